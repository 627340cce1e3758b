import warnings
from enum import Enum
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd
import polars as pl
import structlog
from statsmodels.formula.api import logit
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)

from heart_disease_inference.exceptions import (
    NonConvergenceError,
    SchemaMismatchError,
    SeparationError,
    ValidationError,
)
from heart_disease_inference.schemas import BINARY_DOMAIN, FittedModel

log = structlog.get_logger(__name__)

DEFAULT_MAX_ITER = 35
Z_95 = 1.96
THRESHOLD = 0.5

Records = pl.DataFrame | pd.DataFrame | Iterable[Mapping[str, Any]]


def _term(name: str) -> str:
    return name if name.isidentifier() else f"Q('{name}')"


def build_formula(outcome: str, predictors: list[str]) -> str:
    """Patsy formula regressing the outcome on the predictors."""
    return f"{_term(outcome)} ~ " + " + ".join(_term(p) for p in predictors)


def _categorical_levels(ds: pl.DataFrame, col: str) -> tuple[str, ...]:
    # Enum columns keep their declared order; anything else is sorted.
    observed = {str(v) for v in ds[col].drop_nulls().unique().to_list()}
    dtype = ds.schema[col]
    if isinstance(dtype, pl.Enum):
        return tuple(c for c in dtype.categories.to_list() if c in observed)
    return tuple(sorted(observed))


def _check_separation(
    frame: pd.DataFrame,
    outcome: str,
    predictors: list[str],
    levels: Mapping[str, tuple[str, ...]],
) -> None:
    y = frame[outcome]
    for predictor in predictors:
        if predictor in levels:
            classes_per_level = frame.groupby(predictor, observed=True)[outcome].nunique()
            pure = classes_per_level[classes_per_level < 2].index.tolist()
            if pure:
                raise SeparationError(
                    f"Levels {pure} of '{predictor}' hold a single outcome class"
                )
        else:
            x0 = frame.loc[y == 0, predictor]
            x1 = frame.loc[y == 1, predictor]
            if x0.max() < x1.min() or x1.max() < x0.min():
                raise SeparationError(
                    f"'{predictor}' perfectly separates the outcome classes"
                )


def fit_logistic_regression(
    ds: pl.DataFrame,
    outcome: str,
    predictors: list[str],
    categorical: list[str] | None = None,
    max_iter: int = DEFAULT_MAX_ITER,
) -> FittedModel:
    """
    Fits a binomial logistic regression by maximum likelihood.

    Categorical predictors are treatment coded against their first level.
    The input frame is left untouched.

    Args:
        ds: Dataset holding the outcome and predictor columns.
        outcome: Binary outcome column, values in {0, 1}.
        predictors: Predictor columns.
        categorical: Subset of ``predictors`` to dummy encode.
        max_iter: Newton-Raphson iteration budget.

    Returns:
        FittedModel: Coefficients, standard errors and the fit-time schema.

    Raises:
        ValidationError: Missing columns or an outcome outside {0, 1}.
        SeparationError: A predictor perfectly separates the outcome.
        NonConvergenceError: The optimizer did not converge.
    """
    categorical = list(categorical or [])
    missing = [c for c in [outcome, *predictors] if c not in ds.columns]
    if missing:
        raise ValidationError(f"Columns missing from the dataset: {missing}")
    unknown = [c for c in categorical if c not in predictors]
    if unknown:
        raise ValidationError(f"Categorical columns are not predictors: {unknown}")

    outcome_values = set(ds[outcome].drop_nulls().unique().to_list())
    if not outcome_values <= BINARY_DOMAIN:
        raise ValidationError(
            f"'{outcome}' holds values outside {sorted(BINARY_DOMAIN)}: "
            f"{sorted(outcome_values - BINARY_DOMAIN, key=str)}"
        )
    if len(outcome_values) < 2:
        raise ValidationError(f"'{outcome}' holds a single class")

    levels = {c: _categorical_levels(ds, c) for c in categorical}
    for col, col_levels in levels.items():
        if len(col_levels) < 2:
            raise ValidationError(f"'{col}' needs at least two levels, got {col_levels}")

    frame = ds.select(outcome, *predictors).drop_nulls().to_pandas()
    frame[outcome] = frame[outcome].astype(int)
    for col, col_levels in levels.items():
        frame[col] = pd.Categorical(frame[col].astype(str), categories=col_levels)

    _check_separation(frame, outcome, predictors, levels)

    formula = build_formula(outcome, predictors)
    model = logit(formula=formula, data=frame)
    model.raise_on_perfect_prediction = True

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = model.fit(method="newton", maxiter=max_iter, disp=False)
        except PerfectSeparationError as exc:
            raise SeparationError(f"Perfect separation while fitting {formula}") from exc
        except np.linalg.LinAlgError as exc:
            raise NonConvergenceError(f"Singular Hessian while fitting {formula}") from exc

    if any(issubclass(w.category, PerfectSeparationWarning) for w in caught):
        raise SeparationError(f"Perfect separation while fitting {formula}")

    converged = bool(result.mle_retvals.get("converged", False))
    if not converged or any(issubclass(w.category, ConvergenceWarning) for w in caught):
        raise NonConvergenceError(
            f"Likelihood optimization did not converge within {max_iter} iterations"
        )

    coefficients = pd.DataFrame(
        {"estimate": result.params, "std_error": result.bse}
    )
    coefficients.index.name = "term"
    if not np.isfinite(coefficients.to_numpy()).all():
        raise NonConvergenceError("Coefficient covariance could not be estimated")

    log.info(
        "logit_fitted",
        formula=formula,
        n_obs=int(result.nobs),
        iterations=int(result.mle_retvals.get("iterations", -1)),
        log_likelihood=float(result.llf),
    )

    return FittedModel(
        result=result,
        formula=formula,
        outcome=outcome,
        predictors=tuple(predictors),
        levels=levels,
        coefficients=coefficients,
    )


def train_logit_model(ds: pl.DataFrame, target_col: str, parameters: dict) -> FittedModel:
    """Fits the configured logistic regression."""
    return fit_logistic_regression(
        ds,
        target_col,
        parameters["predictors"],
        categorical=parameters.get("categorical", []),
        max_iter=parameters.get("max_iter", DEFAULT_MAX_ITER),
    )


def summarize_model_fit(model: FittedModel) -> pd.DataFrame:
    """Extracts likelihood-based fit statistics."""
    result = model.result
    return pd.DataFrame(
        [
            {"Metric": "Observations", "Value": float(result.nobs)},
            {"Metric": "Log-Likelihood", "Value": float(result.llf)},
            {"Metric": "LL-Null", "Value": float(result.llnull)},
            {"Metric": "Pseudo R-squared", "Value": float(result.prsquared)},
            {"Metric": "AIC", "Value": float(result.aic)},
            {"Metric": "BIC", "Value": float(result.bic)},
            {"Metric": "LLR p-value", "Value": float(result.llr_pvalue)},
        ]
    )


def compute_odds_ratios(model: FittedModel, z: float = Z_95) -> pd.DataFrame:
    """
    Converts log-odds coefficients to odds ratios with Wald confidence
    intervals: OR = exp(b), CI = exp(b -/+ z * se).

    Raises:
        ValidationError: The model lacks usable standard errors.
    """
    coefficients = getattr(model, "coefficients", None)
    if coefficients is None or not {"estimate", "std_error"} <= set(coefficients.columns):
        raise ValidationError("Fitted model has no estimate/std_error table")

    estimate = coefficients["estimate"].to_numpy(dtype=float)
    std_error = coefficients["std_error"].to_numpy(dtype=float)
    if not np.isfinite(std_error).all() or (std_error < 0).any():
        raise ValidationError("Fitted model has missing or invalid standard errors")

    return pd.DataFrame(
        {
            "term": coefficients.index.to_list(),
            "estimate": estimate,
            "std_error": std_error,
            "odds_ratio": np.exp(estimate),
            "ci_lower": np.exp(estimate - z * std_error),
            "ci_upper": np.exp(estimate + z * std_error),
        }
    )


def _label(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _level(value: Any) -> str:
    # Levels are stored as strings at fit time, whatever the column dtype.
    return str(_label(value))


def _is_number(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, (int, float, np.integer, np.floating))


def _prediction_frame(model: FittedModel, records: Records) -> pd.DataFrame:
    if isinstance(records, (pl.DataFrame, pd.DataFrame)):
        missing = [p for p in model.predictors if p not in records.columns]
        if missing:
            raise SchemaMismatchError(f"Records lack required fields: {missing}")
        frame = records[list(model.predictors)]
        if isinstance(frame, pl.DataFrame):
            frame = frame.to_pandas()
        frame = frame.copy()
    else:
        rows = []
        for i, record in enumerate(records):
            missing = [p for p in model.predictors if p not in record]
            if missing:
                raise SchemaMismatchError(f"Record {i} lacks required fields: {missing}")
            rows.append({p: _label(record[p]) for p in model.predictors})
        frame = pd.DataFrame(rows, columns=list(model.predictors))

    for p in model.numeric_predictors:
        column = frame[p]
        numeric = pd.api.types.is_numeric_dtype(column) or column.map(
            lambda v: v is None or _is_number(v)
        ).all()
        if pd.api.types.is_bool_dtype(column) or not numeric:
            raise SchemaMismatchError(f"'{p}' holds non-numeric values")
        frame[p] = column.astype(float)
        if frame[p].isna().any():
            raise SchemaMismatchError(f"'{p}' holds missing values")

    for p, levels in model.levels.items():
        values = frame[p].astype(object).map(_level)
        unseen = sorted({v for v in values if v not in levels})
        if unseen:
            raise SchemaMismatchError(
                f"'{p}' holds levels unseen at fit time: {unseen}; known: {list(levels)}"
            )
        frame[p] = pd.Categorical(values, categories=levels)

    return frame


def predict_probabilities(model: FittedModel, records: Records) -> np.ndarray:
    """
    Predicted probability of the outcome for each record:
    1 / (1 + exp(-(intercept + sum(coef * x)))).

    Raises:
        SchemaMismatchError: A record does not match the fit-time schema.
    """
    frame = _prediction_frame(model, records)
    if frame.empty:
        return np.empty(0, dtype=float)
    return np.asarray(model.result.predict(frame), dtype=float)


def apply_threshold(probabilities: np.ndarray, threshold: float = THRESHOLD) -> np.ndarray:
    """Labels a probability 1 when it reaches the threshold, else 0."""
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must lie in [0, 1], got {threshold}")
    return (np.asarray(probabilities) >= threshold).astype(int)


def predict_case(model: FittedModel, **fields: Any) -> float:
    """Probability for a single ad hoc case, e.g. ``age=45, sex="Female"``."""
    return float(predict_probabilities(model, [fields])[0])


def predict_outcomes(
    model: FittedModel, ds: pl.DataFrame, threshold: float = THRESHOLD
) -> pl.DataFrame:
    """Adds predicted probability and label columns to every record."""
    y_pred_probs = predict_probabilities(model, ds)
    y_pred = apply_threshold(y_pred_probs, threshold)

    log.info(
        "outcomes_predicted",
        rows=ds.height,
        threshold=threshold,
        predicted_positive=int(y_pred.sum()),
    )
    return ds.with_columns(
        pl.Series("pred_prob", y_pred_probs, dtype=pl.Float64),
        pl.Series("pred_hd", y_pred, dtype=pl.Int8),
    )


def predict_new_cases(
    model: FittedModel, cases: list[dict], threshold: float = THRESHOLD
) -> pd.DataFrame:
    """Scores what-if cases, one row per case."""
    y_pred_probs = predict_probabilities(model, cases)
    y_pred = apply_threshold(y_pred_probs, threshold)

    rows = [{k: _label(v) for k, v in case.items()} for case in cases]
    for row, prob in zip(rows, y_pred_probs):
        log.info("case_predicted", case=row, probability=float(prob))

    predictions = pd.DataFrame(rows)
    predictions["pred_prob"] = y_pred_probs
    predictions["pred_hd"] = y_pred
    return predictions
