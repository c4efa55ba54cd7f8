import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

pl = pytest.importorskip("polars", reason="polars is required for bestlevels tests")
sklearn_datasets = pytest.importorskip(
    "sklearn.datasets", reason="scikit-learn is required for the diabetes dataset"
)

# Positive-class rate per medication, 100 patients each
MEDICATION_RATES = {
    "insulin": 0.99,
    "metformin": 0.95,
    "prednisone": 0.25,
    "metoprolol": 0.20,
    "nexium": 0.50,
    "tiotropium": 0.50,
}


def _medication_tables(per_group: int = 100, no_meds: int = 10):
    patient_ids, outcomes, long_ids, meds = [], [], [], []
    pid = 0
    for med, rate in MEDICATION_RATES.items():
        n_pos = round(rate * per_group)
        for i in range(per_group):
            patient_ids.append(pid)
            outcomes.append(1 if i < n_pos else 0)
            long_ids.append(pid)
            meds.append(med)
            pid += 1
    # patients without any medication never reach the scorer
    for _ in range(no_meds):
        patient_ids.append(pid)
        outcomes.append(0)
        pid += 1
    d = pl.DataFrame({"patient_id": patient_ids, "readmitted": outcomes})
    longsheet = pl.DataFrame({"patient_id": long_ids, "medication": meds})
    return d, longsheet


@pytest.fixture()
def medications():
    return _medication_tables()


@pytest.fixture()
def medication_df(medications) -> pl.DataFrame:
    return medications[0]


@pytest.fixture()
def medication_long(medications) -> pl.DataFrame:
    return medications[1]


@pytest.fixture(scope="session")
def diabetes():
    loader = sklearn_datasets.load_diabetes()
    data = {name: loader.data[:, idx].astype(float) for idx, name in enumerate(loader.feature_names)}
    data["progression"] = loader.target.astype(float)
    df = pl.DataFrame(data).with_row_index("obs_id")
    n = df.height
    # Two memberships per observation: a bmi band and a blood-pressure band
    bands = df.with_columns([
        ((pl.col("bmi").rank("ordinal") - 1) * 20 // n).cast(pl.Int64).alias("bmi_band"),
        ((pl.col("bp").rank("ordinal") - 1) * 20 // n).cast(pl.Int64).alias("bp_band"),
    ])
    longsheet = pl.concat([
        bands.select([
            pl.col("obs_id"),
            (pl.lit("bmi_") + pl.col("bmi_band").cast(pl.Utf8)).alias("band"),
        ]),
        bands.select([
            pl.col("obs_id"),
            (pl.lit("bp_") + pl.col("bp_band").cast(pl.Utf8)).alias("band"),
        ]),
    ])
    return df.select(["obs_id", "age", "sex", "progression"]), longsheet
