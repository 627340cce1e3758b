"""
Synthetic heart disease records shared across the test suite.

The outcome is drawn from a known logistic model of age, sex and thalach,
calibrated so that a 45 year old woman with a maximum heart rate of 150 has
a disease probability of about 0.177.
"""

import numpy as np
import polars as pl
import pytest

from heart_disease_inference.pipelines.data_processing.nodes import recode_labels
from heart_disease_inference.pipelines.logistic_regression.nodes import (
    fit_logistic_regression,
)

TRUE_COEFFICIENTS = {
    "Intercept": -6.1868,
    "age": -0.03,
    "sex[T.Male]": -1.5,
    "thalach": 0.04,
}
N_RECORDS = 50_000


def simulate_heart_records(n: int, seed: int = 2024) -> pl.DataFrame:
    rng = np.random.default_rng(seed)
    age = np.clip(np.round(rng.normal(54, 9, n)), 29, 77)
    sex = rng.binomial(1, 0.68, n)
    thalach = np.clip(np.round(rng.normal(150, 23, n)), 71, 202)

    log_odds = (
        TRUE_COEFFICIENTS["Intercept"]
        + TRUE_COEFFICIENTS["age"] * age
        + TRUE_COEFFICIENTS["sex[T.Male]"] * sex
        + TRUE_COEFFICIENTS["thalach"] * thalach
    )
    target = rng.binomial(1, 1 / (1 + np.exp(-log_odds)))

    return pl.DataFrame(
        {
            "age": age.astype(int),
            "sex": sex,
            "cp": rng.integers(0, 4, n),
            "trestbps": np.round(rng.normal(131, 17, n)).astype(int),
            "chol": np.round(rng.normal(246, 51, n)).astype(int),
            "fbs": rng.binomial(1, 0.15, n),
            "restecg": rng.integers(0, 3, n),
            "thalach": thalach.astype(int),
            "exang": rng.binomial(1, 0.33, n),
            "oldpeak": np.round(rng.exponential(1.0, n), 1),
            "slope": rng.integers(0, 3, n),
            "ca": rng.integers(0, 5, n),
            "thal": rng.integers(0, 4, n),
            "target": target,
        }
    )


@pytest.fixture(scope="session")
def raw_heart_records() -> pl.DataFrame:
    return simulate_heart_records(N_RECORDS)


@pytest.fixture(scope="session")
def ds_heart_disease(raw_heart_records) -> pl.DataFrame:
    return recode_labels(raw_heart_records, "target")


@pytest.fixture(scope="session")
def fitted_model(ds_heart_disease):
    return fit_logistic_regression(
        ds_heart_disease,
        "target",
        ["age", "sex", "thalach"],
        categorical=["sex"],
    )


@pytest.fixture
def heart_csv(tmp_path, raw_heart_records):
    filepath = tmp_path / "heart.csv"
    raw_heart_records.head(50).write_csv(filepath)
    return filepath


@pytest.fixture
def logistic_regression_params():
    return {
        "predictors": ["age", "sex", "thalach"],
        "categorical": ["sex"],
        "max_iter": 35,
        "z": 1.96,
        "what_if_cases": [{"age": 45, "sex": "Female", "thalach": 150}],
    }


@pytest.fixture
def association_params():
    return {
        "alpha": 0.05,
        "equal_var": False,
        "predictors": [
            {"name": "sex", "kind": "categorical"},
            {"name": "age", "kind": "continuous"},
            {"name": "thalach", "kind": "continuous"},
        ],
    }
