"""Validation framework activation from a primary business context.

Maps five coarse descriptors of an idea (business-model type, industry,
revenue-model complexity, target customer, operational complexity) to a
category key plus the validation frameworks whose checks apply.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.core.schemas_adaptive import BusinessModelCategory as C

Framework = Literal[
    "saas-subscription",
    "two-sided-marketplace",
    "compliance-heavy",
    "dtc-physical-economics",
    "general",
]

REGULATED_INDUSTRY = re.compile(r"(health|medical|pharma|fintech|finance|legal|insurance)")


class PrimaryContext(BaseModel):
    business_model_type: Literal["b2b", "b2c", "marketplace", "dtc"]
    industry: str = "General"
    revenue_model_complexity: Literal["simple", "tiered", "usage", "hybrid"] = "simple"
    target_customer: Literal[
        "consumer", "prosumer", "smb", "midmarket", "enterprise", "two-sided"
    ] = "smb"
    operational_complexity: Literal["digital", "physical", "hybrid"] = "digital"


class PolicyDecision(BaseModel):
    model_key: C
    frameworks: list[Framework]
    notes: list[str] = Field(default_factory=list)


class Criteria(BaseModel):
    checks: list[str]
    kpis: Optional[dict[str, str]] = None
    timeline_hint: Optional[str] = None


def decide_policy(ctx: PrimaryContext) -> PolicyDecision:
    """Resolve category and activated frameworks for a primary context."""
    notes: list[str] = []
    frameworks: list[Framework] = []
    model_key = C.GENERAL

    if ctx.business_model_type == "marketplace":
        model_key = C.SERVICES_MARKETPLACE
        frameworks.append("two-sided-marketplace")
        notes.append("marketplace-detected")
    elif ctx.business_model_type == "dtc":
        model_key = C.PHYSICAL_SUBSCRIPTION if ctx.operational_complexity != "digital" else C.DTC_ECOM
        frameworks.append("dtc-physical-economics")
        notes.append("dtc-detected")
    elif ctx.business_model_type == "b2b":
        model_key = C.SAAS_B2B
        frameworks.append("saas-subscription")
        notes.append("b2b-saas-detected")
    elif ctx.business_model_type == "b2c":
        model_key = C.SAAS_B2C
        frameworks.append("saas-subscription")
        notes.append("b2c-saas-detected")

    if REGULATED_INDUSTRY.search(ctx.industry.lower()):
        if "compliance-heavy" not in frameworks:
            frameworks.append("compliance-heavy")
        if model_key == C.GENERAL:
            model_key = C.REGULATED_SERVICES
        notes.append("regulated-industry")

    if ctx.target_customer == "two-sided" and "two-sided-marketplace" not in frameworks:
        frameworks.append("two-sided-marketplace")
        if model_key == C.GENERAL:
            model_key = C.SERVICES_MARKETPLACE
        notes.append("two-sided-customer")

    if ctx.operational_complexity != "digital" and "dtc-physical-economics" not in frameworks:
        frameworks.append("dtc-physical-economics")

    if not frameworks:
        frameworks.append("general")

    return PolicyDecision(model_key=model_key, frameworks=frameworks, notes=notes)


FRAMEWORK_CRITERIA: dict[str, Criteria] = {
    "saas-subscription": Criteria(
        checks=[
            "Recurring revenue metrics (MRR/ARR), logo/net revenue retention, churn cohort analysis",
            "Integration readiness (SSO/SAML, SCIM, key partner apps)",
            "Security posture (SOC2/ISO27001 or roadmap); data residency controls",
            "Scalability under load: p95 latency within SLO; DR runbooks",
        ],
        kpis={
            "pilot_conversion": ">= 30-50% with executive sponsor",
            "nrr": ">= 100% for healthy SMB+; cohort trends improving",
        },
        timeline_hint="6-12 months multi-stakeholder evaluations",
    ),
    "two-sided-marketplace": Criteria(
        checks=[
            "Supply-demand balance and time-to-liquidity in seed markets",
            "Trust and disintermediation controls; repeat transaction rate",
            "Funnel: visitor to lead, signup to first transaction, 7/30-day retention",
        ],
        kpis={
            "cac": "$30-$150 depending on price point and channel",
            "v2l": "1-3% typical for B2B-style funnels; adjust for B2C",
            "l2o": "10-15% for B2B-style funnels",
        },
        timeline_hint="Rapid cycles (days to weeks) with local testbeds",
    ),
    "compliance-heavy": Criteria(
        checks=[
            "Regulatory pathway assessment (licensing, filings, oversight)",
            "AML/KYC/Transaction monitoring controls; auditability",
            "Stress scenarios and incident response runbooks",
        ],
        kpis={
            "kyc_pass": ">= 85-95% geo-dependent; low false negatives",
            "fraud_loss_bps": "< 30-50 bps (product-dependent)",
            "reliability": "p99 failure rate within SLO; reconciliation >= 99.9%",
        },
        timeline_hint="Staged rollout: sandbox, supervised scale, general",
    ),
    "dtc-physical-economics": Criteria(
        checks=[
            "Unit economics: COGS + shipping + fulfillment; gross margin %",
            "CAC payback months and LTV:CAC ratio; cohort retention",
            "Seasonality and inventory turns; pause/skip features",
        ],
        kpis={
            "gross_margin": "Target >= 40-60% depending on category",
            "payback": "<= 12 months preferred; show p50/p90 bands",
            "ltv_cac": ">= 3:1 sustainable at scaled CAC",
        },
        timeline_hint="Fast iteration with box/cohort experiments",
    ),
}

GENERAL_CRITERIA = Criteria(checks=["General fit/demand/economics gates"], timeline_hint="Varies")


def get_validation_criteria(decision: PolicyDecision) -> list[Criteria]:
    """Criteria for each activated framework, or a single general entry."""
    out = [FRAMEWORK_CRITERIA[f] for f in decision.frameworks if f in FRAMEWORK_CRITERIA]
    return out or [GENERAL_CRITERIA]
