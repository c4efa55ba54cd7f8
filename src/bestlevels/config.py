from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ConfigurationError

VALID_PROBLEMS = ("auto", "classification", "regression")
VALID_ZERO_VARIANCE = ("inf", "raise")
VALID_FUNS = ("sum", "mean", "min", "max", "median", "count", "first", "last")


@dataclass(frozen=True)
class SelectionConfig:
    """Parameters of a fresh (training) level selection.

    - n_levels: number of levels to keep, split between positive and negative association.
    - min_obs: groups with fewer member observations are not eligible.
    - cohesion_weight: exponent on the purity term of the classification statistic.
    - positive_class: outcome value treated as the positive class. Default: the second
      of the two sorted classes.
    - problem: 'auto' | 'classification' | 'regression'.
    - zero_variance: 'inf' scores zero-variance groups as +/-inf, 'raise' rejects them.
    """

    n_levels: int = 100
    min_obs: int = 1
    cohesion_weight: float = 2.0
    positive_class: Optional[Any] = None
    problem: str = "auto"
    zero_variance: str = "inf"

    def __post_init__(self) -> None:
        if isinstance(self.n_levels, bool) or not isinstance(self.n_levels, numbers.Integral) or self.n_levels <= 0:
            raise ConfigurationError(f"n_levels must be a positive integer, got {self.n_levels!r}")
        object.__setattr__(self, "n_levels", int(self.n_levels))
        if isinstance(self.min_obs, bool) or not isinstance(self.min_obs, numbers.Integral) or self.min_obs < 1:
            raise ConfigurationError(f"min_obs must be an integer >= 1, got {self.min_obs!r}")
        object.__setattr__(self, "min_obs", int(self.min_obs))
        try:
            weight = float(self.cohesion_weight)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"cohesion_weight must be numeric, got {self.cohesion_weight!r}") from exc
        if not math.isfinite(weight) or weight <= 0:
            raise ConfigurationError(f"cohesion_weight must be a positive finite number, got {weight}")
        object.__setattr__(self, "cohesion_weight", weight)
        if self.problem not in VALID_PROBLEMS:
            raise ConfigurationError(f"problem must be one of {VALID_PROBLEMS}, got {self.problem!r}")
        if self.zero_variance not in VALID_ZERO_VARIANCE:
            raise ConfigurationError(
                f"zero_variance must be one of {VALID_ZERO_VARIANCE}, got {self.zero_variance!r}"
            )


@dataclass(frozen=True)
class EncodingConfig:
    """How selected levels are filled when pivoted to wide columns.

    - fill: long-table column whose values populate the new columns. When None the
      constant `fill_value` is used for every membership.
    - fill_value: constant used when `fill` is None (default 1.0, a presence flag).
    - fun: aggregation for duplicate (id, group) rows.
    - missing_fill: value for observations without a membership in a level.
    - prefix_sep: separator between the grouping attribute and the level in column names.
    """

    fill: Optional[str] = None
    fill_value: float = 1.0
    fun: str = "sum"
    missing_fill: Optional[float] = 0.0
    prefix_sep: str = "_"

    def __post_init__(self) -> None:
        if self.fun not in VALID_FUNS:
            raise ConfigurationError(f"Unsupported aggregation '{self.fun}'. Valid: {sorted(VALID_FUNS)}")
        try:
            object.__setattr__(self, "fill_value", float(self.fill_value))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"fill_value must be numeric, got {self.fill_value!r}") from exc
        if self.missing_fill is not None:
            try:
                object.__setattr__(self, "missing_fill", float(self.missing_fill))
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"missing_fill must be numeric or None, got {self.missing_fill!r}") from exc
