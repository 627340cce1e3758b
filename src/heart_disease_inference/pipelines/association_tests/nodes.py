import numpy as np
import pandas as pd
import polars as pl
import structlog
from scipy import stats

from heart_disease_inference.exceptions import UndefinedTestError
from heart_disease_inference.schemas import PredictorKind, TestResult

log = structlog.get_logger(__name__)


def _contingency_table(ds: pl.DataFrame, predictor: str, outcome: str) -> np.ndarray:
    counts = ds.group_by([predictor, outcome]).agg(pl.len().alias("count"))
    table = (
        counts.pivot(on=outcome, index=predictor, values="count")
        .fill_null(0)
        .sort(predictor)
    )
    return table.drop(predictor).to_numpy()


def chi_squared_test(
    ds: pl.DataFrame, predictor: str, outcome: str, alpha: float = 0.05
) -> TestResult:
    """
    Pearson chi-squared test of independence between a categorical predictor
    and the binary outcome. Yates' continuity correction is applied to 2x2
    tables, which makes the test equivalent to a two-sample proportion test.
    """
    observed = _contingency_table(ds, predictor, outcome)
    n_levels, n_outcomes = observed.shape
    if n_levels < 2:
        raise UndefinedTestError(
            f"'{predictor}' has a single level; the contingency test is undefined"
        )
    if n_outcomes < 2:
        raise UndefinedTestError(
            f"'{outcome}' has a single level; the contingency test is undefined"
        )

    result = stats.chi2_contingency(observed, correction=True)
    outcome_counts = ds[outcome].value_counts()
    group_sizes = dict(outcome_counts.rows())

    return TestResult(
        predictor=predictor,
        kind=PredictorKind.CATEGORICAL,
        test="chi-squared",
        statistic=float(result.statistic),
        p_value=float(result.pvalue),
        dof=float(result.dof),
        n_negative=int(group_sizes.get(0, 0)),
        n_positive=int(group_sizes.get(1, 0)),
        alpha=alpha,
    )


def two_sample_t_test(
    ds: pl.DataFrame,
    predictor: str,
    outcome: str,
    equal_var: bool = False,
    alpha: float = 0.05,
) -> TestResult:
    """
    Two-sample t-test of the predictor's mean in the outcome=0 group against
    the outcome=1 group. Welch's unequal-variance test unless ``equal_var``.
    """
    g0 = ds.filter(pl.col(outcome) == 0)[predictor].to_numpy().astype(float)
    g1 = ds.filter(pl.col(outcome) == 1)[predictor].to_numpy().astype(float)

    if len(g0) < 2 or len(g1) < 2:
        raise UndefinedTestError(
            f"'{predictor}' needs at least two observations per outcome group, "
            f"got {len(g0)} and {len(g1)}"
        )
    if np.var(g0) == 0 and np.var(g1) == 0:
        raise UndefinedTestError(
            f"'{predictor}' has zero variance in both outcome groups"
        )

    result = stats.ttest_ind(g0, g1, equal_var=equal_var)
    if not np.isfinite(result.pvalue):
        raise UndefinedTestError(f"t-test on '{predictor}' produced no p-value")

    return TestResult(
        predictor=predictor,
        kind=PredictorKind.CONTINUOUS,
        test="student t-test" if equal_var else "welch t-test",
        statistic=float(result.statistic),
        p_value=float(result.pvalue),
        dof=float(result.df),
        n_negative=len(g0),
        n_positive=len(g1),
        alpha=alpha,
    )


def association_test(
    ds: pl.DataFrame,
    outcome: str,
    predictor: str,
    kind: PredictorKind | str,
    equal_var: bool = False,
    alpha: float = 0.05,
) -> TestResult:
    """Runs the test matching the predictor kind against the binary outcome.

    Raises:
        UndefinedTestError: The input is degenerate for the chosen test.
    """
    kind = PredictorKind(kind)
    subset = ds.select(predictor, outcome).drop_nulls()

    if kind is PredictorKind.CATEGORICAL:
        result = chi_squared_test(subset, predictor, outcome, alpha=alpha)
    else:
        result = two_sample_t_test(
            subset, predictor, outcome, equal_var=equal_var, alpha=alpha
        )

    log.info(
        "association_tested",
        predictor=predictor,
        test=result.test,
        statistic=result.statistic,
        p_value=result.p_value,
        significant=result.significant,
    )
    return result


def run_association_tests(
    ds: pl.DataFrame, target_col: str, parameters: dict
) -> pd.DataFrame:
    """
    Tests every configured predictor against the outcome.

    Args:
        ds: Labelled dataset.
        target_col: Binary outcome column.
        parameters: ``predictors`` (list of ``{name, kind}``), ``alpha`` and
            ``equal_var``.

    Returns:
        pd.DataFrame: One row per predictor with statistic and p-value.
    """
    alpha = parameters.get("alpha", 0.05)
    equal_var = parameters.get("equal_var", False)

    results = []
    for entry in parameters["predictors"]:
        try:
            result = association_test(
                ds,
                target_col,
                entry["name"],
                entry["kind"],
                equal_var=equal_var,
                alpha=alpha,
            )
        except UndefinedTestError as exc:
            log.error("association_undefined", predictor=entry["name"], error=str(exc))
            raise
        results.append(result.to_row())

    return pd.DataFrame(results)
