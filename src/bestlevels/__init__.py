import logging

from .config import EncodingConfig, SelectionConfig
from .encoder import BestLevelsEncoder
from .errors import (
    BestLevelsError,
    ConfigurationError,
    DataQualityError,
    EmptyResultWarning,
)
from .orchestrator import (
    Mode,
    ReplaySelection,
    TrainSelection,
    as_replay,
    get_best_levels,
    join_observations,
    observed_outcomes,
    resolve,
    score_groups,
)
from .pivot import AugmentedTable, add_best_levels, level_column_names, pivot_levels
from .scoring import (
    classification_scores,
    continuity_correction,
    infer_problem_type,
    regression_scores,
)
from .selector import select_levels
from .store import Level, LevelStoreArtifact, SelectedLevelSet, Sign

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Selection
    "get_best_levels",
    "add_best_levels",
    "BestLevelsEncoder",
    # Requests
    "Mode",
    "TrainSelection",
    "ReplaySelection",
    "as_replay",
    "resolve",
    # Building blocks
    "join_observations",
    "observed_outcomes",
    "score_groups",
    "regression_scores",
    "classification_scores",
    "continuity_correction",
    "infer_problem_type",
    "select_levels",
    "pivot_levels",
    "level_column_names",
    # Level store
    "Sign",
    "Level",
    "SelectedLevelSet",
    "LevelStoreArtifact",
    "AugmentedTable",
    # Configuration
    "SelectionConfig",
    "EncodingConfig",
    # Errors
    "BestLevelsError",
    "ConfigurationError",
    "DataQualityError",
    "EmptyResultWarning",
]
