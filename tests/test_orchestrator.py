import logging
import math

import polars as pl
import pytest

from bestlevels import (
    ConfigurationError,
    DataQualityError,
    LevelStoreArtifact,
    Mode,
    ReplaySelection,
    SelectedLevelSet,
    SelectionConfig,
    TrainSelection,
    as_replay,
    get_best_levels,
    join_observations,
    resolve,
    score_groups,
)
from bestlevels.store import Level, Sign


def test_six_medications_select_two_of_each_sign(medication_df, medication_long):
    levels = get_best_levels(
        medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=4
    )

    assert levels.problem == "classification"
    assert levels.names == ["insulin", "metformin", "metoprolol", "prednisone"]
    assert levels.positive == ["insulin", "metformin"]
    assert levels.negative == ["metoprolol", "prednisone"]
    assert "nexium" not in levels
    assert "tiotropium" not in levels


def test_odd_budget_breaks_neutral_tie_by_name(medication_df, medication_long):
    levels = get_best_levels(
        medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=5
    )
    assert set(levels.names) == {"insulin", "metformin", "metoprolol", "prednisone", "nexium"}


def test_training_is_idempotent(medication_df, medication_long):
    first = get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=4)
    second = get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=4)
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_row_order_does_not_change_selection(medication_df, medication_long):
    shuffled_long = medication_long.sample(fraction=1.0, shuffle=True, seed=7)
    shuffled_df = medication_df.sample(fraction=1.0, shuffle=True, seed=11)
    first = get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=5)
    second = get_best_levels(shuffled_df, shuffled_long, "patient_id", "medication", "readmitted", n_levels=5)
    assert first.names == second.names


def test_string_outcome_with_explicit_positive_class(medication_df, medication_long):
    df = medication_df.with_columns(
        pl.when(pl.col("readmitted") == 1).then(pl.lit("Y")).otherwise(pl.lit("N")).alias("readmitted")
    )
    levels = get_best_levels(df, medication_long, "patient_id", "medication", "readmitted", n_levels=2)
    assert levels.names == ["insulin", "metoprolol"]

    flipped = get_best_levels(
        df, medication_long, "patient_id", "medication", "readmitted", n_levels=2, positive_class="N"
    )
    assert flipped.positive == ["metoprolol"]
    assert flipped.negative == ["insulin"]


def test_regression_outcome_on_diabetes(diabetes):
    df, longsheet = diabetes
    levels = get_best_levels(df, longsheet, "obs_id", "band", "progression", n_levels=6, min_obs=5)

    assert levels.problem == "regression"
    assert len(levels.positive) == 3
    assert len(levels.negative) == 3

    joined = join_observations(df, longsheet, "obs_id", "band", "progression")
    global_mean = joined.get_column("progression").mean()
    means = dict(joined.group_by("band").agg(pl.col("progression").mean()).iter_rows())
    assert all(means[name] > global_mean for name in levels.positive)
    assert all(means[name] < global_mean for name in levels.negative)


def test_observations_without_outcome_or_membership_are_dropped():
    d = pl.DataFrame({"id": [1, 2, 3, 4], "y": [1, 0, None, 1]})
    longsheet = pl.DataFrame({"id": [1, 1, 1, 2, 3, 9], "g": ["a", "a", "b", None, "a", "a"]})
    joined = join_observations(d, longsheet, "id", "g", "y")

    assert sorted(joined.select(["id", "g"]).rows()) == [(1, "a"), (1, "b")]


def test_group_values_are_strings():
    d = pl.DataFrame({"id": [1, 2, 3, 4], "y": [1, 0, 1, 0]})
    longsheet = pl.DataFrame({"id": [1, 2, 3, 4], "zip": [30301, 30301, 98101, 98101]})
    levels = get_best_levels(d, longsheet, "id", "zip", "y", n_levels=2)
    assert sorted(levels.names) == ["30301", "98101"]


def test_score_groups_exposes_statistics(medication_df, medication_long):
    scored = score_groups(
        medication_df, medication_long, "patient_id", "medication", "readmitted", SelectionConfig(n_levels=4)
    )
    assert scored.problem == "classification"
    assert scored.positive_class == 1
    assert scored.n_groups == 6
    assert set(scored.scores.columns) >= {"group", "n", "p", "p_adj", "omega", "sign"}


def test_budget_over_twice_the_groups_fails_fast(medication_df, medication_long):
    with pytest.raises(ConfigurationError, match="twice"):
        get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=13)


@pytest.mark.parametrize("n_levels", [0, -3, 2.5])
def test_invalid_budget(medication_df, medication_long, n_levels):
    with pytest.raises(ConfigurationError):
        get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=n_levels)


def test_multiclass_outcome_is_rejected(medication_long):
    d = pl.DataFrame({"patient_id": list(range(600)), "readmitted": ["a", "b", "c"] * 200})
    with pytest.raises(ConfigurationError, match="classes"):
        get_best_levels(d, medication_long, "patient_id", "medication", "readmitted", n_levels=2)


def test_missing_columns_are_configuration_errors(medication_df, medication_long):
    with pytest.raises(ConfigurationError, match="primary"):
        get_best_levels(medication_df, medication_long, "pid", "medication", "readmitted", n_levels=2)
    with pytest.raises(ConfigurationError, match="long"):
        get_best_levels(medication_df, medication_long.rename({"patient_id": "pid"}), "patient_id", "medication", "readmitted")
    with pytest.raises(ConfigurationError):
        get_best_levels(medication_df, medication_long, "patient_id", "drug", "readmitted")
    with pytest.raises(ConfigurationError, match="outcome"):
        get_best_levels(medication_df, medication_long, "patient_id", "medication")


def test_replay_returns_stored_levels_verbatim(medication_df, medication_long):
    stored = SelectedLevelSet(
        levels=(Level("tiotropium", Sign.NEGATIVE, 0.5, 100), Level("unseen", Sign.POSITIVE, 0.1, 3)),
        problem="classification",
    )
    artifact = LevelStoreArtifact(level_set=stored, groups="medication", outcome="readmitted")

    # no outcome needed and the budget is ignored on replay
    levels = get_best_levels(medication_df, medication_long, "patient_id", "medication", levels=artifact, n_levels=99)
    assert levels is stored
    assert get_best_levels(medication_df, medication_long, "patient_id", "medication", levels=stored) is stored


def test_replay_checks_grouping_attribute(medication_df, medication_long):
    artifact = LevelStoreArtifact(level_set=SelectedLevelSet(), groups="diagnosis")
    with pytest.raises(ConfigurationError, match="diagnosis"):
        get_best_levels(medication_df, medication_long, "patient_id", "medication", levels=artifact)


def test_resolve_reports_mode(medication_df, medication_long):
    mode, artifact = resolve(
        TrainSelection(outcome="readmitted", config=SelectionConfig(n_levels=4)),
        medication_df,
        medication_long,
        "patient_id",
        "medication",
    )
    assert mode is Mode.TRAIN
    assert artifact.groups == "medication"
    assert artifact.outcome == "readmitted"
    assert artifact.positive_class == 1
    assert artifact.n_levels == 4

    mode, replayed = resolve(ReplaySelection.from_artifact(artifact), medication_df, medication_long, "patient_id", "medication")
    assert mode is Mode.REPLAY
    assert replayed is artifact


def test_as_replay_rejects_unknown_objects():
    with pytest.raises(TypeError):
        as_replay(["insulin", "metformin"])


def test_training_logs_selection_summary(medication_df, medication_long, caplog):
    with caplog.at_level(logging.INFO, logger="bestlevels"):
        get_best_levels(medication_df, medication_long, "patient_id", "medication", "readmitted", n_levels=4)
    assert any("Selected 4 levels" in rec.getMessage() for rec in caplog.records)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_outcomes_are_dropped(bad, caplog):
    d = pl.DataFrame({"id": [1, 2, 3, 4, 5, 6], "y": [1.0, 2.0, bad, 10.0, 11.0, 12.5]})
    longsheet = pl.DataFrame({"id": [1, 2, 3, 4, 5, 6], "g": ["a", "a", "a", "b", "b", "b"]})

    joined = join_observations(d, longsheet, "id", "g", "y")
    assert sorted(joined.get_column("id").to_list()) == [1, 2, 4, 5, 6]

    with caplog.at_level(logging.WARNING, logger="bestlevels"):
        levels = get_best_levels(d, longsheet, "id", "g", "y", n_levels=2)
    assert any("non-finite outcome" in rec.getMessage() for rec in caplog.records)

    assert levels.problem == "regression"
    assert levels.positive == ["b"]
    assert levels.negative == ["a"]
    assert all(math.isfinite(level.omega) for level in levels)
    # mean of a is 1.5 against a global mean of 7.3, with variance 0.5 over 2 members
    assert {level.name: level.omega for level in levels}["a"] == pytest.approx(-11.6)

    text = LevelStoreArtifact(level_set=levels, groups="g", outcome="y").to_json()
    assert "NaN" not in text


def test_outcome_without_usable_values_is_rejected():
    d = pl.DataFrame({"id": [1, 2], "y": [float("nan"), None]})
    longsheet = pl.DataFrame({"id": [1, 2], "g": ["a", "b"]})
    with pytest.raises(DataQualityError):
        get_best_levels(d, longsheet, "id", "g", "y", n_levels=1)


def test_float_binary_outcome_uses_classification(medication_df, medication_long):
    with_missing = medication_df.with_columns(
        pl.when(pl.col("patient_id") == 0).then(pl.lit(None)).otherwise(pl.col("readmitted")).alias("readmitted")
    )
    expected = get_best_levels(with_missing, medication_long, "patient_id", "medication", "readmitted", n_levels=4)

    as_float = with_missing.with_columns(pl.col("readmitted").cast(pl.Float64))
    levels = get_best_levels(as_float, medication_long, "patient_id", "medication", "readmitted", n_levels=4)
    assert levels.problem == "classification"
    assert levels.names == expected.names

    with_nan = as_float.with_columns(pl.col("readmitted").fill_null(float("nan")))
    assert get_best_levels(with_nan, medication_long, "patient_id", "medication", "readmitted", n_levels=4).names == expected.names


def test_float_binary_outcome_from_pandas(medication_df, medication_long):
    pytest.importorskip("pandas")
    frame = medication_df.to_pandas()
    frame["readmitted"] = frame["readmitted"].astype(float)
    frame.loc[frame["patient_id"] == 0, "readmitted"] = None

    levels = get_best_levels(frame, medication_long.to_pandas(), "patient_id", "medication", "readmitted", n_levels=4)
    assert levels.problem == "classification"
    scored = score_groups(frame, medication_long, "patient_id", "medication", "readmitted", SelectionConfig(n_levels=4))
    assert scored.positive_class == 1.0


def test_uncastable_long_ids_are_configuration_errors(medication_df):
    longsheet = pl.DataFrame({"patient_id": ["P001", "P002"], "medication": ["insulin", "nexium"]})
    with pytest.raises(ConfigurationError, match="patient_id"):
        get_best_levels(medication_df, longsheet, "patient_id", "medication", "readmitted", n_levels=1)
