import dataclasses
import math

import numpy as np
import pandas as pd
import polars as pl
import pytest

from heart_disease_inference.exceptions import (
    ModelFitError,
    NonConvergenceError,
    SchemaMismatchError,
    SeparationError,
    ValidationError,
)
from heart_disease_inference.pipelines.logistic_regression.nodes import (
    apply_threshold,
    build_formula,
    compute_odds_ratios,
    fit_logistic_regression,
    predict_case,
    predict_new_cases,
    predict_outcomes,
    predict_probabilities,
    summarize_model_fit,
    train_logit_model,
)
from heart_disease_inference.schemas import Sex

from ...conftest import N_RECORDS, TRUE_COEFFICIENTS


class TestFitLogisticRegression:
    def test_one_coefficient_per_term_plus_intercept(self, fitted_model):
        assert fitted_model.n_terms == 1 + len(fitted_model.predictors)
        assert fitted_model.coefficients.index[0] == "Intercept"
        assert set(fitted_model.coefficients.index) == set(TRUE_COEFFICIENTS)

    def test_expanded_categorical_levels_count_as_terms(self, ds_heart_disease):
        model = fit_logistic_regression(
            ds_heart_disease,
            "target",
            ["age", "sex", "cp"],
            categorical=["sex", "cp"],
        )

        assert model.levels["cp"] == ("0", "1", "2", "3")
        # intercept + age + sex[T.Male] + three cp dummies
        assert model.n_terms == 6

    def test_numeric_coded_categorical_predicts_on_training_data(
        self, ds_heart_disease
    ):
        ds = ds_heart_disease.head(5000)
        model = fit_logistic_regression(
            ds, "target", ["age", "sex", "cp"], categorical=["sex", "cp"]
        )

        predictions = predict_outcomes(model, ds)

        assert predictions.height == ds.height
        assert predictions["pred_prob"].null_count() == 0
        probability = predict_case(model, age=50, sex="Male", cp=2)
        assert 0.0 < probability < 1.0
        with pytest.raises(SchemaMismatchError, match="unseen"):
            predict_case(model, age=50, sex="Male", cp=7)

    def test_first_level_is_the_reference(self, fitted_model):
        assert fitted_model.levels == {"sex": ("Female", "Male")}
        assert "sex[T.Male]" in fitted_model.coefficients.index
        assert "sex[T.Female]" not in fitted_model.coefficients.index

    def test_recovers_generating_coefficients(self, fitted_model):
        estimates = fitted_model.coefficients["estimate"]
        assert estimates["age"] == pytest.approx(TRUE_COEFFICIENTS["age"], abs=0.01)
        assert estimates["sex[T.Male]"] == pytest.approx(
            TRUE_COEFFICIENTS["sex[T.Male]"], abs=0.2
        )
        assert estimates["thalach"] == pytest.approx(
            TRUE_COEFFICIENTS["thalach"], abs=0.005
        )
        assert (fitted_model.coefficients["std_error"] > 0).all()

    def test_input_frame_is_not_modified(self, ds_heart_disease):
        ds = ds_heart_disease.head(2000)
        before = ds.clone()

        fit_logistic_regression(ds, "target", ["age", "sex"], categorical=["sex"])

        assert ds.equals(before)

    def test_missing_predictor_column(self, ds_heart_disease):
        with pytest.raises(ValidationError, match="weight"):
            fit_logistic_regression(ds_heart_disease, "target", ["age", "weight"])

    def test_outcome_outside_binary_domain(self):
        ds = pl.DataFrame({"y": [0, 1, 2, 1], "x": [1.0, 2.0, 3.0, 4.0]})

        with pytest.raises(ValidationError, match="outside"):
            fit_logistic_regression(ds, "y", ["x"])

    def test_numeric_predictor_separating_the_outcome(self):
        x = np.arange(20, dtype=float)
        ds = pl.DataFrame({"y": (x >= 10).astype(int), "x": x})

        with pytest.raises(SeparationError, match="'x'"):
            fit_logistic_regression(ds, "y", ["x"])

    def test_categorical_level_with_a_single_outcome(self):
        ds = pl.DataFrame(
            {
                "y": [0, 1, 0, 1, 1, 1],
                "group": ["a", "a", "a", "b", "b", "b"],
                "x": [1.0, 2.0, 3.0, 2.5, 1.5, 4.0],
            }
        )

        with pytest.raises(SeparationError, match="group"):
            fit_logistic_regression(ds, "y", ["x", "group"], categorical=["group"])

    def test_jointly_separating_predictors(self):
        rng = np.random.default_rng(3)
        x1 = rng.normal(0, 1, 200)
        x2 = rng.normal(0, 1, 200)
        ds = pl.DataFrame({"y": (x1 + x2 > 0).astype(int), "x1": x1, "x2": x2})

        with pytest.raises(ModelFitError):
            fit_logistic_regression(ds, "y", ["x1", "x2"])

    def test_iteration_budget_exhausted(self, ds_heart_disease):
        with pytest.raises(NonConvergenceError, match="1 iterations"):
            fit_logistic_regression(
                ds_heart_disease,
                "target",
                ["age", "sex", "thalach"],
                categorical=["sex"],
                max_iter=1,
            )

    def test_train_logit_model_reads_parameters(
        self, ds_heart_disease, logistic_regression_params
    ):
        model = train_logit_model(
            ds_heart_disease.head(5000), "target", logistic_regression_params
        )

        assert model.predictors == ("age", "sex", "thalach")
        assert model.outcome == "target"
        assert model.link == "logit"


def test_build_formula_quotes_non_identifiers():
    assert build_formula("target", ["age", "Max HR"]) == "target ~ age + Q('Max HR')"


def test_summarize_model_fit(fitted_model):
    summary = summarize_model_fit(fitted_model).set_index("Metric")["Value"]

    assert summary["Observations"] == N_RECORDS
    assert summary["Log-Likelihood"] > summary["LL-Null"]
    assert 0 < summary["Pseudo R-squared"] < 1
    assert summary["LLR p-value"] < 0.05


class TestComputeOddsRatios:
    def test_odds_ratio_is_exponentiated_estimate(self, fitted_model):
        table = compute_odds_ratios(fitted_model)

        np.testing.assert_allclose(table["odds_ratio"], np.exp(table["estimate"]))
        np.testing.assert_allclose(
            table["ci_lower"], np.exp(table["estimate"] - 1.96 * table["std_error"])
        )
        np.testing.assert_allclose(
            table["ci_upper"], np.exp(table["estimate"] + 1.96 * table["std_error"])
        )
        assert table["term"].to_list() == fitted_model.coefficients.index.to_list()

    def test_interval_brackets_odds_ratio(self, fitted_model):
        table = compute_odds_ratios(fitted_model)

        assert (table["ci_lower"] <= table["odds_ratio"]).all()
        assert (table["odds_ratio"] <= table["ci_upper"]).all()

    def test_odds_ratio_ordering_follows_estimates(self, fitted_model):
        table = compute_odds_ratios(fitted_model).sort_values("estimate")

        assert table["odds_ratio"].is_monotonic_increasing

    def test_repeated_runs_are_identical(self, fitted_model):
        first = compute_odds_ratios(fitted_model)
        second = compute_odds_ratios(fitted_model)

        assert first.to_csv(index=False) == second.to_csv(index=False)

    def test_zero_standard_error_collapses_interval(self, fitted_model):
        coefficients = pd.DataFrame(
            {"estimate": [0.0, math.log(2.0)], "std_error": [0.0, 0.0]},
            index=pd.Index(["Intercept", "x"], name="term"),
        )
        model = dataclasses.replace(fitted_model, coefficients=coefficients)

        table = compute_odds_ratios(model)

        assert table["odds_ratio"].to_list() == pytest.approx([1.0, 2.0])
        assert table["ci_lower"].to_list() == pytest.approx([1.0, 2.0])
        assert table["ci_upper"].to_list() == pytest.approx([1.0, 2.0])

    def test_missing_standard_error_column(self, fitted_model):
        model = dataclasses.replace(
            fitted_model,
            coefficients=fitted_model.coefficients.drop(columns="std_error"),
        )

        with pytest.raises(ValidationError):
            compute_odds_ratios(model)

    def test_missing_standard_error_value(self, fitted_model):
        coefficients = fitted_model.coefficients.copy()
        coefficients.loc["age", "std_error"] = np.nan
        model = dataclasses.replace(fitted_model, coefficients=coefficients)

        with pytest.raises(ValidationError):
            compute_odds_ratios(model)


class TestPredict:
    def test_what_if_case(self, fitted_model):
        probability = predict_case(fitted_model, age=45, sex="Female", thalach=150)

        assert probability == pytest.approx(0.177, abs=0.03)

    def test_sex_enum_and_label_agree(self, fitted_model):
        by_label = predict_case(fitted_model, age=45, sex="Female", thalach=150)
        by_enum = predict_case(fitted_model, age=45, sex=Sex.FEMALE, thalach=150)

        assert by_label == by_enum

    def test_probability_is_inverse_logit_of_linear_predictor(self, fitted_model):
        b = fitted_model.coefficients["estimate"]
        log_odds = b["Intercept"] + b["age"] * 60 + b["sex[T.Male]"] + b["thalach"] * 130

        probability = predict_case(fitted_model, age=60, sex="Male", thalach=130)

        assert probability == pytest.approx(1 / (1 + math.exp(-log_odds)))

    def test_bulk_prediction_adds_columns(self, fitted_model, ds_heart_disease):
        predictions = predict_outcomes(fitted_model, ds_heart_disease)

        assert predictions.height == ds_heart_disease.height
        assert predictions.columns == [*ds_heart_disease.columns, "pred_prob", "pred_hd"]
        probs = predictions["pred_prob"]
        assert probs.min() >= 0 and probs.max() <= 1
        expected = (probs >= 0.5).cast(pl.Int8)
        assert predictions["pred_hd"].equals(expected.alias("pred_hd"))
        assert "pred_prob" not in ds_heart_disease.columns

    def test_threshold_is_configurable(self, fitted_model, ds_heart_disease):
        predictions = predict_outcomes(fitted_model, ds_heart_disease.head(100), 0.0)

        assert predictions["pred_hd"].to_list() == [1] * 100

    def test_threshold_outside_unit_interval(self):
        with pytest.raises(ValueError):
            apply_threshold(np.array([0.2, 0.7]), 1.5)

    def test_threshold_boundary_is_inclusive(self):
        assert apply_threshold(np.array([0.49, 0.5, 0.51])).tolist() == [0, 1, 1]

    def test_predict_new_cases(self, fitted_model, logistic_regression_params):
        cases = logistic_regression_params["what_if_cases"]

        predictions = predict_new_cases(fitted_model, cases)

        assert predictions.columns.to_list() == [
            "age",
            "sex",
            "thalach",
            "pred_prob",
            "pred_hd",
        ]
        assert len(predictions) == 1
        assert predictions.loc[0, "pred_hd"] == 0

    def test_pandas_records(self, fitted_model):
        records = pd.DataFrame(
            {"age": [45, 70], "sex": ["Female", "Male"], "thalach": [150, 110]}
        )

        probs = predict_probabilities(fitted_model, records)

        assert probs.shape == (2,)
        assert probs[0] == pytest.approx(
            predict_case(fitted_model, age=45, sex="Female", thalach=150)
        )

    def test_missing_field(self, fitted_model):
        with pytest.raises(SchemaMismatchError, match="thalach"):
            predict_case(fitted_model, age=45, sex="Female")

    def test_missing_column_in_frame(self, fitted_model, ds_heart_disease):
        with pytest.raises(SchemaMismatchError, match="thalach"):
            predict_outcomes(fitted_model, ds_heart_disease.drop("thalach"))

    def test_unseen_level(self, fitted_model):
        with pytest.raises(SchemaMismatchError, match="unseen"):
            predict_case(fitted_model, age=45, sex="Other", thalach=150)

    def test_numeric_code_is_not_a_known_level(self, fitted_model):
        with pytest.raises(SchemaMismatchError):
            predict_case(fitted_model, age=45, sex=0, thalach=150)

    def test_non_numeric_value(self, fitted_model):
        with pytest.raises(SchemaMismatchError, match="age"):
            predict_case(fitted_model, age="forty-five", sex="Female", thalach=150)

    def test_missing_value_is_not_imputed(self, fitted_model):
        with pytest.raises(SchemaMismatchError, match="thalach"):
            predict_case(fitted_model, age=45, sex="Female", thalach=None)

    @pytest.mark.parametrize("age", ["45", True])
    def test_numeric_field_is_not_coerced(self, fitted_model, age):
        with pytest.raises(SchemaMismatchError, match="age"):
            predict_case(fitted_model, age=age, sex="Female", thalach=150)

    def test_numpy_scalars_are_numbers(self, fitted_model):
        probability = predict_case(
            fitted_model, age=np.int64(45), sex="Female", thalach=np.float64(150)
        )

        assert probability == predict_case(
            fitted_model, age=45, sex="Female", thalach=150
        )
