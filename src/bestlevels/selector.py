from __future__ import annotations

import logging
import numbers
import warnings
from typing import Callable, Dict, List, Optional, Tuple

import polars as pl

from .errors import ConfigurationError, EmptyResultWarning
from .store import Level, SelectedLevelSet, Sign

logger = logging.getLogger(__name__)

Row = Dict[str, object]


def _rank_key(problem: str) -> Callable[[Row], Tuple]:
    # Best first; ties go to the larger group, then to the group name
    if problem == "regression":
        return lambda r: (-abs(r["omega"]), -r["n"], r["group"])
    if problem == "classification":
        return lambda r: (r["omega"], -r["n"], r["group"])
    raise ConfigurationError(f"problem must be 'classification' or 'regression', got {problem!r}")


def _check_n_levels(n_levels: int, n_groups: int) -> None:
    if isinstance(n_levels, bool) or not isinstance(n_levels, numbers.Integral) or n_levels <= 0:
        raise ConfigurationError(f"n_levels must be a positive integer, got {n_levels!r}")
    if n_levels > 2 * n_groups:
        raise ConfigurationError(
            f"n_levels={n_levels} exceeds twice the number of distinct groups present ({n_groups})"
        )


def _quotas(pos: List[Row], neg: List[Row], n_levels: int, key: Callable[[Row], Tuple]) -> Tuple[int, int]:
    half, extra = divmod(n_levels, 2)
    quota_pos = quota_neg = half
    if extra:
        next_pos = pos[half] if len(pos) > half else None
        next_neg = neg[half] if len(neg) > half else None
        if next_neg is None or (next_pos is not None and key(next_pos) < key(next_neg)):
            quota_pos += 1
        else:
            quota_neg += 1

    take_pos = min(quota_pos, len(pos))
    take_neg = min(quota_neg, len(neg))
    shortfall = n_levels - take_pos - take_neg
    if shortfall > 0:
        more = min(shortfall, len(pos) - take_pos)
        take_pos += more
        shortfall -= more
        take_neg += min(shortfall, len(neg) - take_neg)
    return take_pos, take_neg


def select_levels(
    scores: pl.DataFrame,
    n_levels: int,
    problem: str,
    min_obs: int = 1,
    n_groups_present: Optional[int] = None,
) -> SelectedLevelSet:
    """Keep the best `n_levels` groups, balanced between positive and negative association.

    `scores` holds one row per group with columns group, n, omega and sign. Each sign is
    ranked separately (|omega| descending for regression, omega ascending for
    classification) and contributes half of the levels; an odd slot goes to the sign
    whose next candidate ranks better and a sign short of candidates hands its slots
    to the other one. Groups with fewer than `min_obs` members are not eligible.
    """
    present = scores.height if n_groups_present is None else int(n_groups_present)
    _check_n_levels(n_levels, present)
    key = _rank_key(problem)

    eligible = scores.filter(pl.col("n") >= min_obs).select(["group", "n", "omega", "sign"])
    rows = eligible.to_dicts()
    pos = sorted((r for r in rows if r["sign"] == Sign.POSITIVE.value), key=key)
    neg = sorted((r for r in rows if r["sign"] == Sign.NEGATIVE.value), key=key)

    take_pos, take_neg = _quotas(pos, neg, n_levels, key)
    chosen = sorted(pos[:take_pos] + neg[:take_neg], key=key)

    if len(chosen) < n_levels:
        message = (
            f"Only {len(chosen)} of {n_levels} requested levels are eligible "
            f"({present} groups present, min_obs={min_obs})"
        )
        logger.warning(message)
        warnings.warn(message, EmptyResultWarning, stacklevel=2)

    levels = tuple(
        Level(name=str(r["group"]), sign=Sign(r["sign"]), omega=float(r["omega"]), n=int(r["n"]))
        for r in chosen
    )
    logger.info(
        "Selected %d levels (%d positive, %d negative) from %d eligible groups",
        len(levels),
        take_pos,
        take_neg,
        len(rows),
    )
    return SelectedLevelSet(levels=levels, problem=problem)
