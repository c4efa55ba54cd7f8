"""Train a fresh level selection or replay a stored one.

A call either scores the joined data and selects levels (TRAIN) or returns a
previously selected level set untouched (REPLAY). The two cases are modelled as
`TrainSelection` and `ReplaySelection`; `resolve` is the only place that tells
them apart. Replaying never looks at the outcome, so columns created from a
stored level set are the same on every dataset, whatever groups it contains.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple, Optional, Tuple, Union

import polars as pl

from .base import _align_ids, _ensure_polars_df, _require_columns
from .config import SelectionConfig
from .errors import ConfigurationError, DataQualityError
from .scoring import (
    classification_scores,
    infer_problem_type,
    regression_scores,
    resolve_positive_class,
)
from .selector import select_levels
from .store import LevelStoreArtifact, SelectedLevelSet

if TYPE_CHECKING:  # pragma: no cover
    from .encoder import BestLevelsEncoder
    from .pivot import AugmentedTable

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    TRAIN = "train"
    REPLAY = "replay"


@dataclass(frozen=True)
class TrainSelection:
    """Request a fresh selection scored against `outcome`."""

    outcome: str
    config: SelectionConfig = field(default_factory=SelectionConfig)


@dataclass(frozen=True)
class ReplaySelection:
    """Request reuse of a stored level set.

    `artifact` is None when only a bare level set is available; such a set carries no
    grouping attribute, so it is accepted for any grouping column.
    """

    level_set: SelectedLevelSet
    artifact: Optional[LevelStoreArtifact] = None

    @classmethod
    def from_level_set(cls, level_set: SelectedLevelSet) -> "ReplaySelection":
        return cls(level_set=level_set)

    @classmethod
    def from_artifact(cls, artifact: LevelStoreArtifact) -> "ReplaySelection":
        return cls(level_set=artifact.level_set, artifact=artifact)

    @classmethod
    def from_augmented(cls, table: "AugmentedTable") -> "ReplaySelection":
        return cls.from_artifact(table.artifact)

    @classmethod
    def from_encoder(cls, encoder: "BestLevelsEncoder") -> "ReplaySelection":
        if not encoder.is_fitted_ or encoder.artifact_ is None:
            raise RuntimeError("Call fit before reusing the encoder's levels")
        return cls.from_artifact(encoder.artifact_)

    def to_artifact(self, groups: str) -> LevelStoreArtifact:
        if self.artifact is not None:
            self.artifact.validate_groups(groups)
            return self.artifact
        return LevelStoreArtifact(level_set=self.level_set, groups=groups)


SelectionRequest = Union[TrainSelection, ReplaySelection]


def as_replay(levels: Any) -> ReplaySelection:
    """Convert any accepted stored-levels object into a ReplaySelection.

    Accepts a ReplaySelection, SelectedLevelSet, LevelStoreArtifact, AugmentedTable or a
    fitted BestLevelsEncoder.
    """
    from .encoder import BestLevelsEncoder
    from .pivot import AugmentedTable

    if isinstance(levels, ReplaySelection):
        return levels
    if isinstance(levels, LevelStoreArtifact):
        return ReplaySelection.from_artifact(levels)
    if isinstance(levels, SelectedLevelSet):
        return ReplaySelection.from_level_set(levels)
    if isinstance(levels, AugmentedTable):
        return ReplaySelection.from_augmented(levels)
    if isinstance(levels, BestLevelsEncoder):
        return ReplaySelection.from_encoder(levels)
    raise TypeError(
        "levels must be a SelectedLevelSet, LevelStoreArtifact, AugmentedTable or fitted "
        f"BestLevelsEncoder, got {type(levels).__name__}"
    )


def observed_outcomes(d: pl.DataFrame, id: str, outcome: str) -> pl.DataFrame:
    """(id, outcome) rows with a usable outcome.

    Nulls are dropped, and so are NaN and +/-inf in float outcomes.
    """
    out = d.select([id, outcome]).drop_nulls(outcome)
    if out.schema[outcome].is_float():
        finite = out.filter(pl.col(outcome).is_finite())
        if finite.height < out.height:
            logger.warning(
                "Dropped %d observations with a non-finite outcome '%s'",
                out.height - finite.height,
                outcome,
            )
        out = finite
    return out


def join_observations(
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
    outcome: str,
) -> pl.DataFrame:
    """One row per distinct (id, group) membership with the observation's outcome.

    Observations without an outcome or without any membership are dropped; group
    values are cast to strings.
    """
    members = (
        _align_ids(longsheet, d, id)
        .select([pl.col(id), pl.col(groups).cast(pl.Utf8)])
        .drop_nulls()
    )
    return (
        observed_outcomes(d, id, outcome)
        .join(members, on=id, how="inner")
        .unique(subset=[id, groups], keep="first", maintain_order=True)
    )


class GroupScores(NamedTuple):
    problem: str
    positive_class: Any
    scores: pl.DataFrame
    n_groups: int


def score_groups(
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
    outcome: str,
    config: SelectionConfig,
) -> GroupScores:
    """Validate inputs, join, and compute the per-group statistics and scores."""
    d = _ensure_polars_df(d)
    longsheet = _ensure_polars_df(longsheet)
    _require_columns(d, [id, outcome], "primary")
    _require_columns(longsheet, [id, groups], "long")

    observed = observed_outcomes(d, id, outcome)
    if observed.is_empty():
        raise DataQualityError(f"No observations with a usable outcome '{outcome}'")
    target = observed.get_column(outcome)
    problem = infer_problem_type(target, config.problem)
    positive_class = None
    if problem == "classification":
        positive_class = resolve_positive_class(target, config.positive_class)

    joined = join_observations(observed, longsheet, id, groups, outcome)
    n_groups = int(joined.get_column(groups).n_unique())
    # Reject an impossible budget before any scoring work
    if config.n_levels > 2 * n_groups:
        raise ConfigurationError(
            f"n_levels={config.n_levels} exceeds twice the number of distinct groups present ({n_groups})"
        )

    if problem == "classification":
        scores = classification_scores(
            joined, id, groups, outcome, positive_class, cohesion_weight=config.cohesion_weight
        )
    else:
        scores = regression_scores(joined, groups, outcome, zero_variance=config.zero_variance)
    return GroupScores(problem, positive_class, scores, n_groups)


def train_artifact(
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
    request: TrainSelection,
) -> LevelStoreArtifact:
    config = request.config
    logger.info("Selecting up to %d levels of '%s' against '%s'", config.n_levels, groups, request.outcome)
    logger.debug("Selection config: %s", config)
    scored = score_groups(d, longsheet, id, groups, request.outcome, config)
    level_set = select_levels(
        scored.scores,
        config.n_levels,
        scored.problem,
        min_obs=config.min_obs,
        n_groups_present=scored.n_groups,
    )
    return LevelStoreArtifact(
        level_set=level_set,
        groups=groups,
        outcome=request.outcome,
        n_levels=config.n_levels,
        min_obs=config.min_obs,
        cohesion_weight=config.cohesion_weight if scored.problem == "classification" else None,
        positive_class=scored.positive_class,
    )


def resolve(
    request: SelectionRequest,
    d: pl.DataFrame,
    longsheet: pl.DataFrame,
    id: str,
    groups: str,
) -> Tuple[Mode, LevelStoreArtifact]:
    """Run a selection request and return the mode used with the resulting artifact."""
    if isinstance(request, ReplaySelection):
        _require_columns(_ensure_polars_df(d), [id], "primary")
        _require_columns(_ensure_polars_df(longsheet), [id, groups], "long")
        artifact = request.to_artifact(groups)
        logger.info("Replaying %d stored levels of '%s'", len(artifact.level_set), groups)
        return Mode.REPLAY, artifact
    if isinstance(request, TrainSelection):
        return Mode.TRAIN, train_artifact(d, longsheet, id, groups, request)
    raise TypeError(f"Unsupported selection request {type(request).__name__}")


def build_request(
    outcome: Optional[str],
    levels: Any = None,
    n_levels: int = 100,
    min_obs: int = 1,
    positive_class: Optional[Any] = None,
    cohesion_weight: float = 2.0,
    problem: str = "auto",
    zero_variance: str = "inf",
) -> SelectionRequest:
    if levels is not None:
        return as_replay(levels)
    if outcome is None:
        raise ConfigurationError("outcome is required to select levels when no stored levels are given")
    config = SelectionConfig(
        n_levels=n_levels,
        min_obs=min_obs,
        cohesion_weight=cohesion_weight,
        positive_class=positive_class,
        problem=problem,
        zero_variance=zero_variance,
    )
    return TrainSelection(outcome=outcome, config=config)


def get_best_levels(
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
) -> SelectedLevelSet:
    """Select the groups of `groups` most informative about `outcome`.

    Without `levels`, scores every group in `longsheet` joined to `d` on `id` and keeps
    `n_levels` of them, half positively and half negatively associated where possible.
    With `levels` (a level set, artifact, augmented table or fitted encoder), returns
    the stored level set unchanged after checking that it was selected for `groups`.
    """
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
    _, artifact = resolve(request, d, longsheet, id, groups)
    return artifact.level_set
