from __future__ import annotations

import logging
from typing import Any, List, Optional, Union

import numpy as np
import polars as pl

from .errors import ConfigurationError, DataQualityError
from .store import Sign

logger = logging.getLogger(__name__)

ArrayLike = Union[float, int, np.ndarray, List[float]]


def infer_problem_type(series: pl.Series, problem: str = "auto") -> str:
    """Return 'classification' or 'regression' for an outcome column.

    Boolean, string and categorical outcomes are classification. Integer outcomes with
    at most two distinct values are treated as a binary class label, and so are float
    outcomes holding at most two distinct whole numbers. Anything else numeric is
    regression.
    """
    if problem in {"classification", "regression"}:
        return problem

    dtype = series.dtype
    if dtype in (pl.Boolean, pl.Utf8, pl.Categorical, pl.String) or isinstance(dtype, pl.Enum):
        return "classification"
    if dtype.is_integer():
        if int(series.drop_nulls().n_unique()) <= 2:
            return "classification"
        return "regression"
    if dtype.is_float():
        values = series.drop_nulls()
        values = values.filter(values.is_finite())
        # integer labels read through pandas with a missing value arrive as floats
        if len(values) > 0 and (values == values.floor()).all() and int(values.n_unique()) <= 2:
            return "classification"
        return "regression"
    if dtype.is_numeric():
        return "regression"
    raise ConfigurationError(f"Cannot infer problem type for outcome '{series.name}' of dtype {dtype}")


def continuity_correction(positives: ArrayLike, n: ArrayLike) -> Union[float, np.ndarray]:
    """Positive-class proportion with counts at a boundary moved 0.5 inward.

    A count of 0 becomes 0.5 and a count of n becomes n - 0.5, so the proportion is
    strictly inside (0, 1) and both log terms stay finite. For n == 1 either boundary
    maps to 0.5.
    """
    k = np.asarray(positives, dtype=float)
    total = np.asarray(n, dtype=float)
    if np.any(total <= 0):
        raise ValueError("group sizes must be positive")
    adjusted = np.where(k <= 0, 0.5, np.where(k >= total, total - 0.5, k))
    result = adjusted / total
    if result.ndim == 0:
        return float(result)
    return result


def resolve_positive_class(series: pl.Series, positive_class: Optional[Any] = None) -> Any:
    """Pick the positive class of a binary outcome.

    Without an explicit `positive_class`, the classes are ordered the way scikit-learn's
    LabelEncoder orders them and the second one is positive (1 for 0/1, True for bools).
    """
    classes = series.drop_nulls().unique().to_list()
    if len(classes) > 2:
        raise ConfigurationError(
            f"Outcome '{series.name}' has {len(classes)} classes; classification needs a binary outcome"
        )
    if positive_class is not None:
        if len(classes) == 2 and positive_class not in classes:
            raise ConfigurationError(
                f"positive_class {positive_class!r} not found in outcome '{series.name}' (classes: {sorted(classes)})"
            )
        return positive_class
    if len(classes) < 2:
        raise ConfigurationError(
            f"Outcome '{series.name}' has a single class; pass positive_class explicitly"
        )

    try:
        from sklearn.preprocessing import LabelEncoder
    except ImportError as exc:  # pragma: no cover - import guard
        raise ImportError(
            "Resolving the positive class requires scikit-learn. Install with `pip install scikit-learn`."
        ) from exc

    encoder = LabelEncoder().fit(classes)
    return encoder.classes_.tolist()[1]


def regression_scores(
    joined: pl.DataFrame,
    groups: str,
    outcome: str,
    zero_variance: str = "inf",
) -> pl.DataFrame:
    """Standardized mean difference of each group against the global mean.

    Returns one row per group with columns group, n, mean, var, omega, sign.
    omega = (mean_j - mean) / sqrt(var_j / n_j). Groups with zero variance
    (single members included) score +/-inf in the direction of their deviation,
    or 0.0 when they do not deviate; with zero_variance='raise' they are rejected.
    """
    y = joined.get_column(outcome)
    if not y.dtype.is_numeric():
        raise DataQualityError(f"Regression outcome '{outcome}' must be numeric, got {y.dtype}")
    if y.dtype.is_float() and not bool(y.is_finite().all()):
        raise DataQualityError(f"Regression outcome '{outcome}' contains NaN or infinite values")
    if joined.is_empty():
        raise DataQualityError("No observations with both a group and an outcome to score")

    global_mean = float(y.cast(pl.Float64).mean())
    stats = (
        joined.group_by(groups)
        .agg([
            pl.len().alias("n"),
            pl.col(outcome).cast(pl.Float64).mean().alias("mean"),
            pl.col(outcome).cast(pl.Float64).var(ddof=1).alias("var"),
        ])
        .rename({groups: "group"})
        .with_columns(pl.col("var").fill_null(0.0).fill_nan(0.0))
        .sort("group")
    )

    n = stats.get_column("n").to_numpy().astype(float)
    diff = stats.get_column("mean").to_numpy() - global_mean
    var = stats.get_column("var").to_numpy()
    zero = var <= 0.0

    if zero_variance == "raise" and zero.any():
        names = stats.filter(pl.Series(zero)).get_column("group").to_list()
        shown = ", ".join(names[:10])
        raise DataQualityError(
            f"{len(names)} group(s) have zero outcome variance and cannot be scored: {shown}"
        )

    capped = np.where(diff > 0, np.inf, np.where(diff < 0, -np.inf, 0.0))
    with np.errstate(divide="ignore", invalid="ignore"):
        omega = diff / np.sqrt(var / n)
    omega = np.where(zero, capped, omega)
    sign = np.where(diff > 0, Sign.POSITIVE.value, Sign.NEGATIVE.value)

    logger.debug(
        "Scored %d groups for regression outcome '%s' (global mean %.6g, %d zero-variance)",
        stats.height,
        outcome,
        global_mean,
        int(zero.sum()),
    )
    return stats.with_columns([
        pl.Series("omega", omega, dtype=pl.Float64),
        pl.Series("sign", sign.tolist(), dtype=pl.Utf8),
    ])


def classification_scores(
    joined: pl.DataFrame,
    id: str,
    groups: str,
    outcome: str,
    positive_class: Any,
    cohesion_weight: float = 2.0,
) -> pl.DataFrame:
    """Purity-times-rarity score of each group for a binary outcome.

    Returns one row per group with columns group, n, positives, p, p_adj, omega, sign.
    A group leans positive when its positive proportion p exceeds the median group
    proportion. omega = purity ** cohesion_weight * -ln(n_j / n), where purity is
    -ln(p_adj) for positive-leaning groups and -ln(1 - p_adj) otherwise and p_adj is
    the continuity-corrected proportion. Lower is better.
    """
    if joined.is_empty():
        raise DataQualityError("No observations with both a group and an outcome to score")

    n_total = float(joined.get_column(id).n_unique())
    stats = (
        joined.with_columns((pl.col(outcome) == positive_class).cast(pl.Int64).alias("__positive"))
        .group_by(groups)
        .agg([
            pl.len().alias("n"),
            pl.col("__positive").sum().alias("positives"),
        ])
        .rename({groups: "group"})
        .sort("group")
    )

    n = stats.get_column("n").to_numpy().astype(float)
    positives = stats.get_column("positives").to_numpy().astype(float)
    p = positives / n
    leans_positive = p > float(np.median(p))
    p_adj = continuity_correction(positives, n)

    purity = np.where(leans_positive, -np.log(p_adj), -np.log1p(-p_adj))
    rarity = np.maximum(-np.log(n / n_total), 0.0)
    omega = np.power(purity, cohesion_weight) * rarity
    sign = np.where(leans_positive, Sign.POSITIVE.value, Sign.NEGATIVE.value)

    logger.debug(
        "Scored %d groups for classification outcome '%s' (positive class %r, %d observations)",
        stats.height,
        outcome,
        positive_class,
        int(n_total),
    )
    return stats.with_columns([
        pl.Series("p", p, dtype=pl.Float64),
        pl.Series("p_adj", np.atleast_1d(p_adj), dtype=pl.Float64),
        pl.Series("omega", omega, dtype=pl.Float64),
        pl.Series("sign", sign.tolist(), dtype=pl.Utf8),
    ])
