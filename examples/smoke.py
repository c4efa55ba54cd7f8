import logging

import polars as pl
from bestlevels import (
    BestLevelsEncoder,
    EncodingConfig,
    LevelStoreArtifact,
    add_best_levels,
    get_best_levels,
)


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    patients = pl.DataFrame({
        "patient_id": list(range(12)),
        "readmitted": ["Y", "Y", "Y", "N", "N", "N", "Y", "N", "N", "Y", "N", "N"],
        "length_of_stay": [9.0, 7.5, 8.0, 2.0, 3.5, 1.0, 6.0, 2.5, 3.0, 7.0, 1.5, 2.0],
    })
    meds = pl.DataFrame({
        "patient_id": [0, 0, 1, 2, 2, 3, 4, 5, 6, 6, 7, 8, 9, 10, 11, 11],
        "medication": [
            "insulin", "metformin", "insulin", "insulin", "nexium", "metoprolol", "prednisone",
            "metoprolol", "metformin", "nexium", "prednisone", "tiotropium", "insulin",
            "metoprolol", "tiotropium", "nexium",
        ],
        "doses": [3, 2, 4, 1, 1, 2, 1, 3, 2, 1, 2, 1, 5, 2, 1, 1],
    })
    print("Patients:\n", patients)
    print("\nMedications (long):\n", meds)

    levels = get_best_levels(patients, meds, "patient_id", "medication", "readmitted", n_levels=4)
    print("\nBest medications for readmission:", levels.names)
    print("Positive:", levels.positive, "Negative:", levels.negative)

    stay = get_best_levels(patients, meds, "patient_id", "medication", "length_of_stay", n_levels=2)
    print("\nBest medications for length of stay:", stay.names)

    trained = add_best_levels(
        patients,
        meds,
        "patient_id",
        "medication",
        "readmitted",
        n_levels=4,
        encoding=EncodingConfig(fill="doses", fun="sum"),
    )
    print("\nAugmented training table:\n", trained.frame)

    # Persist the selection and replay it on new patients
    stored = trained.artifact.to_json()
    print("\nStored artifact:", stored)
    new_patients = pl.DataFrame({"patient_id": [100, 101]})
    new_meds = pl.DataFrame({"patient_id": [100, 101], "medication": ["insulin", "gabapentin"], "doses": [2, 1]})
    deployed = add_best_levels(
        new_patients,
        new_meds,
        "patient_id",
        "medication",
        levels=LevelStoreArtifact.from_json(stored),
        encoding=EncodingConfig(fill="doses", fun="sum"),
    )
    print("\nDeployment table (same columns):\n", deployed.frame)

    encoder = BestLevelsEncoder(id="patient_id", groups="medication", outcome="readmitted", n_levels=2)
    print("\nEncoder output:\n", encoder.fit_transform(patients, meds))
    print("Encoder state:", encoder.to_dict())


if __name__ == "__main__":
    main()
