"""Pydantic models for the Adaptive Scoring & Policy Engine.

Covers the business-model taxonomy, scoring dimensions, evaluator output,
persisted rule definitions and their actions, classification contracts and
the merged final decision.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class BusinessModelCategory(str, Enum):
    SAAS_B2B = "saas-b2b"
    SAAS_B2C = "saas-b2c"
    PHYSICAL_SUBSCRIPTION = "physical-subscription"
    DTC_ECOM = "dtc-ecom"
    SERVICES_MARKETPLACE = "services-marketplace"
    FREELANCE_MARKETPLACE = "freelance-marketplace"
    LEARNING_MARKETPLACE = "learning-marketplace"
    REGULATED_SERVICES = "regulated-services"
    VERTICAL_COMMS = "vertical-comms"
    PM_SOFTWARE = "pm-software"
    GENERAL = "general"


class DimensionKey(str, Enum):
    PROBLEM = "problem"
    UNDERSERVED = "underserved"
    DEMAND = "demand"
    DIFFERENTIATION = "differentiation"
    ECONOMICS = "economics"
    GTM = "gtm"


# Fixed evaluation order for the six axes
DIMENSION_KEYS: tuple[str, ...] = tuple(d.value for d in DimensionKey)


class DecisionStatus(str, Enum):
    GO = "GO"
    REVIEW = "REVIEW"
    NO_GO = "NO-GO"


# ---------------------------------------------------------------------------
# Policy & evaluator models
# ---------------------------------------------------------------------------


class GateThresholds(BaseModel):
    """Minimum raw (0-10) scores plus an optional saturation cap (0-100)."""

    model_config = ConfigDict(frozen=True)

    demand_min10: float
    economics_min10: float
    problem_min10: float
    saturation_cap_overall100: Optional[float] = None


class AdaptiveOutcome(BaseModel):
    """Immutable result of one adaptive evaluation."""

    model_config = ConfigDict(frozen=True)

    weights: Mapping[str, float]
    gates: GateThresholds
    gate_violations: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    overall10: float
    overall100_pre_caps: float
    overall100_post_caps: float
    applied_caps: tuple[str, ...] = ()

    @field_validator("weights", "gate_violations", mode="after")
    @classmethod
    def freeze_mapping(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    @field_serializer("weights", "gate_violations")
    def serialize_mapping(self, v: Mapping[str, Any]) -> dict[str, Any]:
        return dict(v)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class FlagAction(BaseModel):
    """Informational annotation; no scoring effect."""

    type: Literal["flag"] = "flag"
    code: str = Field(..., min_length=1)
    message: Optional[str] = None


class GateAction(BaseModel):
    """Forces a review or failure independent of the numeric score."""

    type: Literal["gate"] = "gate"
    dimension: Union[DimensionKey, Literal["overall"]] = "overall"
    action: Literal["review", "fail"] = "review"
    reason: Optional[str] = None


RuleAction = Annotated[Union[FlagAction, GateAction], Field(discriminator="type")]


class RuleDefinition(BaseModel):
    """A persisted 'when <expression> then <actions>' policy rule."""

    id: str = Field(..., min_length=1)
    when: str = Field(..., min_length=1, description="Constrained boolean expression")
    then: list[RuleAction]
    description: Optional[str] = None
    version: Optional[str] = None
    enabled: Optional[bool] = Field(None, description="Unset means enabled")

    @property
    def is_enabled(self) -> bool:
        return self.enabled is not False

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Rule id cannot be blank")
        return v


class RuleHistoryEntry(BaseModel):
    """Audit record of a rule-set write."""

    when: int = Field(..., description="Epoch milliseconds")
    actor: str
    rules: list[RuleDefinition]


class RuleEvaluationContext(BaseModel):
    """Read-only context exposed to rule expressions.

    Extra fields supplied by the caller are kept and addressable from rules.
    """

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    model: BusinessModelCategory
    saturationPct: Optional[float] = None
    dimensions10: Optional[dict[str, float]] = None

    def as_mapping(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class ClassificationHints(BaseModel):
    business_model: Optional[str] = None
    category: Optional[str] = None
    flags: list[str] = Field(default_factory=list)


class ClassificationInput(BaseModel):
    text: str = ""
    hints: ClassificationHints = Field(default_factory=ClassificationHints)


class ClassificationResult(BaseModel):
    model: BusinessModelCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    features: Optional[dict[str, float]] = None
    notes: list[str] = Field(default_factory=list)
    source: Literal["heuristic", "ml"] = "heuristic"


# ---------------------------------------------------------------------------
# Final decision
# ---------------------------------------------------------------------------


class RulesEvaluated(BaseModel):
    total: int = 0
    triggered: int = 0


class AdaptiveDecision(BaseModel):
    """Numeric outcome merged with rule actions into a verdict."""

    status: DecisionStatus
    score100: float
    outcome: AdaptiveOutcome
    flags: list[str] = Field(default_factory=list)
    rule_penalties: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
    rules_evaluated: RulesEvaluated = Field(default_factory=RulesEvaluated)
