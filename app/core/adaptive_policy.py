"""Static weight and gate policy per business-model category.

Plain lookup tables only. Fallback to ``general`` for unknown categories is
the evaluator's job (see ``app.core.adaptive_evaluator``).

Weights are pre-normalized: each row sums to 1.0.
Gate minimums compare against raw 0-10 dimension scores; the optional
saturation cap bounds the 0-100 overall score when the market is saturated.
"""

from app.core.schemas_adaptive import BusinessModelCategory as C
from app.core.schemas_adaptive import GateThresholds

# =========================
# Weight matrix
# =========================

DEFAULT_WEIGHTS: dict[str, dict[str, float]] = {
    C.SAAS_B2B.value: {
        "problem": 0.22, "underserved": 0.12, "demand": 0.18,
        "differentiation": 0.18, "economics": 0.20, "gtm": 0.10,
    },
    C.SAAS_B2C.value: {
        "problem": 0.18, "underserved": 0.15, "demand": 0.22,
        "differentiation": 0.18, "economics": 0.17, "gtm": 0.10,
    },
    C.PHYSICAL_SUBSCRIPTION.value: {
        "problem": 0.18, "underserved": 0.15, "demand": 0.18,
        "differentiation": 0.12, "economics": 0.27, "gtm": 0.10,
    },
    C.DTC_ECOM.value: {
        "problem": 0.15, "underserved": 0.15, "demand": 0.20,
        "differentiation": 0.15, "economics": 0.25, "gtm": 0.10,
    },
    C.SERVICES_MARKETPLACE.value: {
        "problem": 0.18, "underserved": 0.17, "demand": 0.18,
        "differentiation": 0.12, "economics": 0.20, "gtm": 0.15,
    },
    C.FREELANCE_MARKETPLACE.value: {
        "problem": 0.18, "underserved": 0.17, "demand": 0.18,
        "differentiation": 0.12, "economics": 0.20, "gtm": 0.15,
    },
    C.LEARNING_MARKETPLACE.value: {
        "problem": 0.17, "underserved": 0.18, "demand": 0.20,
        "differentiation": 0.13, "economics": 0.20, "gtm": 0.12,
    },
    C.REGULATED_SERVICES.value: {
        "problem": 0.20, "underserved": 0.18, "demand": 0.12,
        "differentiation": 0.15, "economics": 0.20, "gtm": 0.15,
    },
    C.VERTICAL_COMMS.value: {
        "problem": 0.20, "underserved": 0.15, "demand": 0.17,
        "differentiation": 0.18, "economics": 0.18, "gtm": 0.12,
    },
    C.PM_SOFTWARE.value: {
        "problem": 0.22, "underserved": 0.18, "demand": 0.12,
        "differentiation": 0.18, "economics": 0.20, "gtm": 0.10,
    },
    C.GENERAL.value: {
        "problem": 0.20, "underserved": 0.15, "demand": 0.20,
        "differentiation": 0.15, "economics": 0.20, "gtm": 0.10,
    },
}

# =========================
# Gates
# =========================

# Cap applied to crowded categories once saturation reaches the threshold
SATURATION_CAP_DEFAULT = 15
SATURATION_CAP_THRESHOLD_PCT = 90

DEFAULT_GATES: dict[str, GateThresholds] = {
    C.SAAS_B2B.value: GateThresholds(demand_min10=2, economics_min10=3, problem_min10=3),
    C.SAAS_B2C.value: GateThresholds(demand_min10=2, economics_min10=3, problem_min10=3),
    C.PHYSICAL_SUBSCRIPTION.value: GateThresholds(
        demand_min10=2, economics_min10=3.5, problem_min10=2.5
    ),
    C.DTC_ECOM.value: GateThresholds(demand_min10=2, economics_min10=3.5, problem_min10=2.5),
    C.SERVICES_MARKETPLACE.value: GateThresholds(
        demand_min10=2, economics_min10=3, problem_min10=3,
        saturation_cap_overall100=SATURATION_CAP_DEFAULT,
    ),
    C.FREELANCE_MARKETPLACE.value: GateThresholds(
        demand_min10=2, economics_min10=3, problem_min10=3,
        saturation_cap_overall100=SATURATION_CAP_DEFAULT,
    ),
    C.LEARNING_MARKETPLACE.value: GateThresholds(
        demand_min10=2, economics_min10=3, problem_min10=3,
        saturation_cap_overall100=SATURATION_CAP_DEFAULT,
    ),
    C.REGULATED_SERVICES.value: GateThresholds(demand_min10=2, economics_min10=3, problem_min10=3),
    C.VERTICAL_COMMS.value: GateThresholds(demand_min10=2, economics_min10=3, problem_min10=3),
    C.PM_SOFTWARE.value: GateThresholds(
        demand_min10=2, economics_min10=3, problem_min10=3,
        saturation_cap_overall100=SATURATION_CAP_DEFAULT,
    ),
    C.GENERAL.value: GateThresholds(demand_min10=2, economics_min10=3, problem_min10=3),
}


def policy_table() -> dict[str, dict]:
    """Serializable snapshot of the full policy table."""
    return {
        key: {"weights": dict(DEFAULT_WEIGHTS[key]), "gates": DEFAULT_GATES[key].model_dump()}
        for key in DEFAULT_WEIGHTS
    }
