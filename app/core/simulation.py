"""Monte Carlo helpers for unit-economics uncertainty.

Seeded runs are reproducible (numpy ``default_rng``); unseeded runs draw
fresh entropy.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from pydantic import BaseModel, Field


class PaybackParams(BaseModel):
    mean_monthly_contribution: float   # USD
    sd_monthly_contribution: float     # USD
    cac: float                         # USD
    churn_rate_monthly: float = Field(..., ge=0.0, le=1.0)
    max_months: int = 24


class PaybackResult(BaseModel):
    p50_months: Optional[int]  # None = no payback within horizon
    p90_months: Optional[int]
    prob_payback_within_12: float


class LtvCacParams(BaseModel):
    ltv_mean: float
    ltv_sd: float
    cac_mean: float
    cac_sd: float
    cap_ratio: float = 12.0


class LtvCacBands(BaseModel):
    p10: float
    p50: float
    p90: float


def _pick(sorted_values: np.ndarray, q: float) -> float:
    idx = min(len(sorted_values) - 1, max(0, int(q * len(sorted_values))))
    return float(sorted_values[idx])


def simulate_payback(params: PaybackParams, runs: int = 5000, seed: int | None = None) -> PaybackResult:
    """
    Simulate months to recover CAC under churn and noisy contribution.

    Each run accumulates monthly contribution (normal, floored at 0) starting
    from -CAC until it turns non-negative, the customer churns, or the horizon
    is reached.
    """
    if runs < 1:
        raise ValueError("runs must be >= 1")
    rng = np.random.default_rng(seed)
    horizon = max(1, int(params.max_months))
    never = horizon + 1

    churn_draws = rng.random((runs, horizon)) < params.churn_rate_monthly
    contrib = np.maximum(
        0.0,
        params.mean_monthly_contribution
        + params.sd_monthly_contribution * rng.standard_normal((runs, horizon)),
    )

    # Churn in month m ends the run before that month's contribution lands
    alive = np.cumprod(~churn_draws, axis=1).astype(bool)
    cumulative = -max(0.0, params.cac) + np.cumsum(np.where(alive, contrib, 0.0), axis=1)
    paid = (cumulative >= 0) & alive

    months = np.where(paid.any(axis=1), paid.argmax(axis=1) + 1, never)
    months.sort()
    within12 = int(np.count_nonzero(months <= 12))

    def _months_at(q: float) -> Optional[int]:
        value = int(_pick(months, q))
        return None if value == never else value

    return PaybackResult(
        p50_months=_months_at(0.5),
        p90_months=_months_at(0.9),
        prob_payback_within_12=round(within12 / runs, 3),
    )


def simulate_ltv_cac(params: LtvCacParams, runs: int = 5000, seed: int | None = None) -> LtvCacBands:
    """Percentile bands of the LTV:CAC ratio, capped at ``cap_ratio``."""
    if runs < 1:
        raise ValueError("runs must be >= 1")
    rng = np.random.default_rng(seed)
    ltv = np.maximum(0.0, params.ltv_mean + params.ltv_sd * rng.standard_normal(runs))
    cac = np.maximum(1.0, params.cac_mean + params.cac_sd * rng.standard_normal(runs))
    ratios = np.sort(np.minimum(params.cap_ratio, ltv / cac))

    return LtvCacBands(
        p10=round(_pick(ratios, 0.1), 2),
        p50=round(_pick(ratios, 0.5), 2),
        p90=round(_pick(ratios, 0.9), 2),
    )
