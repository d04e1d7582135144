"""Adaptive evaluator: weighted overall score, gates and caps per category.

Pure and deterministic. Given the same category, dimension scores,
saturation and weight override it always returns an equal AdaptiveOutcome.
Range checking of inputs is the caller's responsibility; out-of-range values
flow through the arithmetic and missing dimensions propagate as NaN.
"""

import math
from typing import Mapping

from app.core.adaptive_policy import (
    DEFAULT_GATES,
    DEFAULT_WEIGHTS,
    SATURATION_CAP_THRESHOLD_PCT,
)
from app.core.schemas_adaptive import (
    DIMENSION_KEYS,
    AdaptiveOutcome,
    BusinessModelCategory,
    GateThresholds,
)

FALLBACK_CATEGORY = BusinessModelCategory.GENERAL.value


def _category_key(category: BusinessModelCategory | str) -> str:
    key = category.value if isinstance(category, BusinessModelCategory) else str(category)
    return key if key in DEFAULT_WEIGHTS else FALLBACK_CATEGORY


def _round_half_up(value: float) -> float:
    # Half-up rounding to an integer; NaN/inf pass through untouched
    if not math.isfinite(value):
        return value
    return math.floor(value + 0.5)


def choose_weights(
    category: BusinessModelCategory | str,
    override: Mapping[str, float] | None = None,
) -> dict[str, float]:
    """
    Resolve the weight vector for a category.

    Args:
        category: Business-model category (unknown values resolve to general)
        override: Optional partial weights merged key-by-key over the base

    Returns:
        Six-key weight vector summing to 1.0

    Raises:
        ValueError: If the merged weights sum to zero or less
    """
    base = DEFAULT_WEIGHTS[_category_key(category)]
    if not override:
        return dict(base)

    merged = dict(base)
    for key, value in override.items():
        key = getattr(key, "value", key)
        if key in merged:
            merged[key] = float(value)

    total = sum(merged.values())
    if total <= 0:
        raise ValueError("Weight override leaves no positive weight to normalize")
    return {key: value / total for key, value in merged.items()}


def resolve_gates(category: BusinessModelCategory | str) -> GateThresholds:
    """Gate thresholds for a category, falling back to general."""
    return DEFAULT_GATES[_category_key(category)]


def _gate_violations(dimensions10: Mapping[str, float], gates: GateThresholds) -> dict[str, str]:
    checks = (
        ("demand", "Demand", gates.demand_min10),
        ("economics", "Economics", gates.economics_min10),
        ("problem", "Problem", gates.problem_min10),
    )
    violations: dict[str, str] = {}
    for key, label, minimum in checks:
        value = dimensions10.get(key, math.nan)
        if value < minimum:
            violations[key] = f"{label} below minimum ({_fmt(value)} < {_fmt(minimum)})"
    return violations


def _fmt(value: float) -> str:
    # 3.0 -> "3", 3.5 -> "3.5"
    return f"{value:g}"


def evaluate_adaptive(
    category: BusinessModelCategory | str,
    dimensions10: Mapping[str, float],
    saturation_pct: float,
    weight_override: Mapping[str, float] | None = None,
) -> AdaptiveOutcome:
    """
    Compute the adaptive outcome for a scored idea.

    Args:
        category: Detected business-model category
        dimensions10: Raw 0-10 score per dimension (all six expected)
        saturation_pct: Market saturation percentage (0-100)
        weight_override: Optional partial custom weights (re-normalized)

    Returns:
        AdaptiveOutcome with weights, gates, violations, pre/post-cap scores
        and the labels of any caps applied
    """
    dims = {getattr(k, "value", k): v for k, v in dimensions10.items()}
    weights = choose_weights(category, weight_override)
    gates = resolve_gates(category)

    overall10 = sum(dims.get(key, math.nan) * weights[key] for key in DIMENSION_KEYS)
    if math.isfinite(overall10):
        overall10 = round(overall10, 3)
    overall100_pre_caps = _round_half_up(overall10 * 10)

    applied_caps: list[str] = []
    overall100_post_caps = overall100_pre_caps
    cap = gates.saturation_cap_overall100
    if cap is not None and saturation_pct >= SATURATION_CAP_THRESHOLD_PCT:
        applied_caps.append(f"Saturation cap {_fmt(cap)}")
        overall100_post_caps = min(overall100_post_caps, cap)

    return AdaptiveOutcome(
        weights=weights,
        gates=gates,
        gate_violations=_gate_violations(dims, gates),
        overall10=overall10,
        overall100_pre_caps=overall100_pre_caps,
        overall100_post_caps=overall100_post_caps,
        applied_caps=applied_caps,
    )
