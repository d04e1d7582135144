"""Tests for app.core.framework_policy."""

import pytest

from app.core.framework_policy import (
    FRAMEWORK_CRITERIA,
    GENERAL_CRITERIA,
    PolicyDecision,
    PrimaryContext,
    decide_policy,
    get_validation_criteria,
)
from app.core.schemas_adaptive import BusinessModelCategory as C


def test_b2b_activates_saas_framework():
    decision = decide_policy(PrimaryContext(business_model_type="b2b"))
    assert decision.model_key == C.SAAS_B2B
    assert decision.frameworks == ["saas-subscription"]
    assert decision.notes == ["b2b-saas-detected"]


def test_marketplace_detected():
    decision = decide_policy(PrimaryContext(business_model_type="marketplace", target_customer="two-sided"))
    assert decision.model_key == C.SERVICES_MARKETPLACE
    # two-sided customer does not duplicate the marketplace framework
    assert decision.frameworks == ["two-sided-marketplace"]


@pytest.mark.parametrize(
    "operational,expected",
    [("digital", C.DTC_ECOM), ("physical", C.PHYSICAL_SUBSCRIPTION), ("hybrid", C.PHYSICAL_SUBSCRIPTION)],
)
def test_dtc_model_key_depends_on_operations(operational, expected):
    decision = decide_policy(
        PrimaryContext(business_model_type="dtc", operational_complexity=operational)
    )
    assert decision.model_key == expected
    assert decision.frameworks == ["dtc-physical-economics"]


@pytest.mark.parametrize("industry", ["Healthcare", "FinTech", "Legal services", "Insurance"])
def test_regulated_industry_adds_compliance(industry):
    decision = decide_policy(PrimaryContext(business_model_type="b2c", industry=industry))
    assert decision.model_key == C.SAAS_B2C
    assert decision.frameworks == ["saas-subscription", "compliance-heavy"]
    assert "regulated-industry" in decision.notes


def test_physical_operations_add_economics_framework():
    decision = decide_policy(
        PrimaryContext(business_model_type="b2b", operational_complexity="physical")
    )
    assert decision.frameworks == ["saas-subscription", "dtc-physical-economics"]


def test_criteria_per_framework():
    decision = decide_policy(PrimaryContext(business_model_type="marketplace", industry="Pharma"))
    criteria = get_validation_criteria(decision)
    assert criteria == [
        FRAMEWORK_CRITERIA["two-sided-marketplace"],
        FRAMEWORK_CRITERIA["compliance-heavy"],
    ]
    assert all(c.checks for c in criteria)


def test_general_framework_falls_back_to_general_criteria():
    decision = PolicyDecision(model_key=C.GENERAL, frameworks=["general"])
    assert get_validation_criteria(decision) == [GENERAL_CRITERIA]


def test_invalid_context_rejected():
    with pytest.raises(ValueError):
        PrimaryContext(business_model_type="nonprofit")
