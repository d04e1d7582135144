"""Statistical helpers for rule experiments and weight calibration.

Pure functions, no third-party dependencies.
"""

import math
from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class TTestResult:
    t: float
    df: float
    p_approx: float  # two-sided, normal-tail approximation


@dataclass(frozen=True)
class LinRegResult:
    a: float  # intercept
    b: float  # slope
    r2: float


def _mean(xs: Sequence[float]) -> float:
    return sum(xs) / max(1, len(xs))


def _sample_variance(xs: Sequence[float], mean: float) -> float:
    return sum((x - mean) ** 2 for x in xs) / max(1, len(xs) - 1)


def normal_cdf(z: float) -> float:
    """Standard normal CDF, Hart-style polynomial approximation (z >= 0)."""
    t = 1 / (1 + 0.2316419 * z)
    d = math.exp(-0.5 * z * z) / math.sqrt(2 * math.pi)
    poly = t * (
        0.319381530
        + t * (-0.356563782 + t * (1.781477937 + t * (-1.821255978 + t * 1.330274429)))
    )
    return 1 - d * poly


def t_test_welch(a: Sequence[float], b: Sequence[float]) -> TTestResult:
    """
    Two-sample Welch t-test.

    Degenerate inputs (fewer than two samples per group, zero variance)
    yield NaN/inf rather than raising.
    """
    mean_a, mean_b = _mean(a), _mean(b)
    var_a, var_b = _sample_variance(a, mean_a), _sample_variance(b, mean_b)
    na, nb = len(a), len(b)

    try:
        se2 = var_a / na + var_b / nb
        t = (mean_a - mean_b) / math.sqrt(se2)
    except ZeroDivisionError:
        t = math.nan if mean_a == mean_b else math.copysign(math.inf, mean_a - mean_b)
        se2 = 0.0

    try:
        df = se2**2 / (
            (var_a * var_a) / (na * na * (na - 1)) + (var_b * var_b) / (nb * nb * (nb - 1))
        )
    except ZeroDivisionError:
        df = math.nan

    z = abs(t)
    p_approx = 2 * (1 - normal_cdf(z)) if math.isfinite(z) else (0.0 if z == math.inf else math.nan)
    return TTestResult(t=t, df=df, p_approx=p_approx)


def linear_regression(x: Sequence[float], y: Sequence[float]) -> LinRegResult:
    """Least-squares fit of y = a + b*x over the common prefix of x and y."""
    n = min(len(x), len(y))
    xs, ys = list(x[:n]), list(y[:n])
    mean_x, mean_y = _mean(xs), _mean(ys)

    sxx = sum((xi - mean_x) ** 2 for xi in xs)
    sxy = sum((xi - mean_x) * (yi - mean_y) for xi, yi in zip(xs, ys))
    b = sxy / max(1e-12, sxx)
    a = mean_y - b * mean_x

    ss_tot = sum((yi - mean_y) ** 2 for yi in ys)
    ss_res = sum((yi - (a + b * xi)) ** 2 for xi, yi in zip(xs, ys))
    r2 = 1 - ss_res / max(1e-12, ss_tot)
    return LinRegResult(a=a, b=b, r2=r2)
