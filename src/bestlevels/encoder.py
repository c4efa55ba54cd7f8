from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import polars as pl

from .base import Transformer, _ensure_polars_df
from .config import EncodingConfig
from .orchestrator import build_request, resolve
from .pivot import level_column_names, pivot_levels
from .store import LevelStoreArtifact, SelectedLevelSet


class BestLevelsEncoder(Transformer):
    """Encode the most informative levels of a long-format grouping column.

    `fit` selects up to `n_levels` groups of `groups` (or adopts `levels` when given)
    and `transform` adds one column per selected group to the primary table. The
    learned state is a LevelStoreArtifact, so a fitted encoder produces the same
    columns on any later table.

    Parameters
    - id: identifier column shared by the primary and the long table.
    - groups: grouping column of the long table.
    - outcome: outcome column of the primary table (needed unless `levels` is given).
    - n_levels, min_obs, positive_class, cohesion_weight, problem, zero_variance:
      selection parameters, see SelectionConfig.
    - fill, fill_value, fun, missing_fill, prefix_sep: encoding parameters, see EncodingConfig.
    - levels: stored levels to reuse instead of selecting.
    """

    _state_loaders: Dict[str, Callable[[dict], Any]] = {
        "LevelStoreArtifact": LevelStoreArtifact.from_dict,
    }

    def __init__(
        self,
        id: str,
        groups: str,
        outcome: Optional[str] = None,
        n_levels: int = 100,
        min_obs: int = 1,
        positive_class: Optional[Any] = None,
        cohesion_weight: float = 2.0,
        problem: str = "auto",
        zero_variance: str = "inf",
        fill: Optional[str] = None,
        fill_value: float = 1.0,
        fun: str = "sum",
        missing_fill: Optional[float] = 0.0,
        prefix_sep: str = "_",
        levels: Any = None,
    ) -> None:
        self.id = id
        self.groups = groups
        self.outcome = outcome
        self.n_levels = n_levels
        self.min_obs = min_obs
        self.positive_class = positive_class
        self.cohesion_weight = cohesion_weight
        self.problem = problem
        self.zero_variance = zero_variance
        self.fill = fill
        self.fill_value = fill_value
        self.fun = fun
        self.missing_fill = missing_fill
        self.prefix_sep = prefix_sep
        self.levels = levels

        self.artifact_: Optional[LevelStoreArtifact] = None
        self.mode_: Optional[str] = None
        self.feature_names_out_: List[str] = []

    def _encoding(self) -> EncodingConfig:
        return EncodingConfig(
            fill=self.fill,
            fill_value=self.fill_value,
            fun=self.fun,
            missing_fill=self.missing_fill,
            prefix_sep=self.prefix_sep,
        )

    def fit(self, df: pl.DataFrame, longsheet: pl.DataFrame) -> "BestLevelsEncoder":
        df = _ensure_polars_df(df)
        longsheet = _ensure_polars_df(longsheet)
        self._encoding()  # fail fast on invalid encoding parameters
        request = build_request(
            self.outcome,
            levels=self.levels,
            n_levels=self.n_levels,
            min_obs=self.min_obs,
            positive_class=self.positive_class,
            cohesion_weight=self.cohesion_weight,
            problem=self.problem,
            zero_variance=self.zero_variance,
        )
        mode, artifact = resolve(request, df, longsheet, self.id, self.groups)
        self.artifact_ = artifact
        self.mode_ = mode.value
        self.feature_names_in_ = [self.id]
        self.feature_names_out_ = level_column_names(self.groups, artifact, self.prefix_sep)
        self.is_fitted_ = True
        return self

    def transform(self, df: pl.DataFrame, longsheet: pl.DataFrame) -> pl.DataFrame:
        if not self.is_fitted_ or self.artifact_ is None:
            raise RuntimeError("Call fit before transform")
        self.artifact_.validate_groups(self.groups)
        return pivot_levels(df, longsheet, self.id, self.groups, self.artifact_, self._encoding())

    def get_selected_levels(self) -> SelectedLevelSet:
        if not self.is_fitted_ or self.artifact_ is None:
            raise RuntimeError("Call fit before get_selected_levels")
        return self.artifact_.level_set
