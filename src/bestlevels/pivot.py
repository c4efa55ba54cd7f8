from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

import polars as pl

from .base import _align_ids, _ensure_polars_df, _require_columns
from .config import EncodingConfig
from .errors import ConfigurationError
from .orchestrator import Mode, build_request, resolve
from .store import LevelStoreArtifact, SelectedLevelSet

logger = logging.getLogger(__name__)

LevelsLike = Union[SelectedLevelSet, LevelStoreArtifact]


@dataclass(frozen=True, eq=False)
class AugmentedTable:
    """Primary table with one column per selected level, plus the artifact that made it."""

    frame: pl.DataFrame
    artifact: LevelStoreArtifact
    prefix_sep: str = "_"

    @property
    def levels(self) -> SelectedLevelSet:
        return self.artifact.level_set

    @property
    def level_columns(self) -> List[str]:
        return level_column_names(self.artifact.groups, self.artifact.level_set, self.prefix_sep)


def level_column_names(groups: str, levels: LevelsLike, prefix_sep: str = "_") -> List[str]:
    level_set = levels.level_set if isinstance(levels, LevelStoreArtifact) else levels
    return [f"{groups}{prefix_sep}{name}" for name in level_set.names]


def _agg_expr(value_col: str, fun: str) -> pl.Expr:
    if fun == "sum":
        return pl.col(value_col).sum()
    if fun == "mean":
        return pl.col(value_col).mean()
    if fun == "min":
        return pl.col(value_col).min()
    if fun == "max":
        return pl.col(value_col).max()
    if fun == "median":
        return pl.col(value_col).median()
    if fun == "count":
        return pl.len()
    if fun == "first":
        return pl.col(value_col).first()
    if fun == "last":
        return pl.col(value_col).last()
    raise ConfigurationError(f"Unsupported aggregation '{fun}'")


def pivot_levels(
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
    levels: LevelsLike,
    config: Optional[EncodingConfig] = None,
) -> pl.DataFrame:
    """Add one Float64 column per selected level to `d`.

    Long rows whose group is not in `levels` are ignored. Duplicate (id, group) rows
    are aggregated with `config.fun`, and observations without a membership in a
    level get `config.missing_fill`. The columns created depend only on `levels`.
    """
    config = config or EncodingConfig()
    d = _ensure_polars_df(d)
    longsheet = _ensure_polars_df(longsheet)
    _require_columns(d, [id], "primary")
    long_cols = [id, groups] + ([config.fill] if config.fill is not None else [])
    _require_columns(longsheet, long_cols, "long")

    level_set = levels.level_set if isinstance(levels, LevelStoreArtifact) else levels
    names = level_set.names
    new_cols = level_column_names(groups, level_set, config.prefix_sep)
    clashes = [c for c in new_cols if c in d.columns]
    if clashes:
        raise ConfigurationError(f"Level columns already exist in the primary table: {', '.join(clashes)}")
    if not names:
        return d

    value = (
        pl.col(config.fill).cast(pl.Float64)
        if config.fill is not None
        else pl.lit(config.fill_value, dtype=pl.Float64)
    ).alias("__value")
    members = (
        _align_ids(longsheet, d, id)
        .select([
            pl.col(id),
            pl.col(groups).cast(pl.Utf8),
            value,
        ])
        .filter(pl.col(groups).is_in(names))
        .group_by([id, groups])
        .agg(_agg_expr("__value", config.fun).cast(pl.Float64).alias("__value"))
    )
    wide = members.group_by(id).agg([
        pl.col("__value").filter(pl.col(groups) == name).first().alias(col)
        for name, col in zip(names, new_cols)
    ])
    out = d.join(wide, on=id, how="left")
    if config.missing_fill is not None:
        out = out.with_columns([pl.col(c).fill_null(config.missing_fill) for c in new_cols])
    return out


def add_best_levels(
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
    outcome: Optional[str] = None,
    n_levels: int = 100,
    min_obs: int = 1,
    positive_class: Optional[Any] = None,
    cohesion_weight: float = 2.0,
    problem: str = "auto",
    zero_variance: str = "inf",
    levels: Any = None,
    encoding: Optional[EncodingConfig] = None,
) -> AugmentedTable:
    """Select (or replay) the best levels of `groups` and add them as columns to `d`.

    Pass the returned AugmentedTable, its artifact, or its level set as `levels` when
    preparing new data so the same columns are produced.
    """
    encoding = encoding or EncodingConfig()
    request = build_request(
        outcome,
        levels=levels,
        n_levels=n_levels,
        min_obs=min_obs,
        positive_class=positive_class,
        cohesion_weight=cohesion_weight,
        problem=problem,
        zero_variance=zero_variance,
    )
    mode, artifact = resolve(request, d, longsheet, id, groups)
    if mode is Mode.TRAIN:
        if encoding.fill is None:
            logger.info("No fill column given; level columns hold %s for each membership", encoding.fill_value)
        else:
            logger.info("Filling level columns from '%s' aggregated with '%s'", encoding.fill, encoding.fun)
    frame = pivot_levels(d, longsheet, id, groups, artifact, encoding)
    return AugmentedTable(frame=frame, artifact=artifact, prefix_sep=encoding.prefix_sep)
