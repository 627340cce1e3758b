import altair as alt
import polars as pl
import structlog

from heart_disease_inference.schemas import PredictorKind

log = structlog.get_logger(__name__)

# altair refuses to embed more rows than this by default
MAX_ROWS = 5000


def categorical_vs_outcome(ds: pl.DataFrame, col: str, label_col: str) -> alt.Chart:
    """Stacked counts of each predictor level split by outcome label."""
    counts = (
        ds.group_by([col, label_col])
        .agg(pl.len().alias("count"))
        .with_columns(pl.col(col).cast(pl.String), pl.col(label_col).cast(pl.String))
        .to_pandas()
    )
    return (
        alt.Chart(counts)
        .mark_bar()
        .encode(
            x=alt.X(f"{col}:N"),
            y=alt.Y("count:Q"),
            color=alt.Color(f"{label_col}:N"),
            tooltip=[col, label_col, "count"],
        )
        .properties(title=f"{col} by {label_col}", width=300, height=300)
    )


def continuous_vs_outcome(
    ds: pl.DataFrame, col: str, label_col: str, seed: int = 42
) -> alt.Chart:
    """Box plot of the predictor within each outcome label."""
    sample = ds.sample(n=min(MAX_ROWS, ds.height), seed=seed)
    values = sample.select(col, pl.col(label_col).cast(pl.String)).to_pandas()
    return (
        alt.Chart(values)
        .mark_boxplot(extent="min-max")
        .encode(
            x=alt.X(f"{label_col}:N"),
            y=alt.Y(f"{col}:Q"),
            color=alt.Color(f"{label_col}:N", legend=None),
        )
        .properties(title=f"{col} by {label_col}", width=300, height=300)
    )


def plot_predictor_distributions(ds: pl.DataFrame, parameters: dict) -> dict[str, dict]:
    """
    Builds one Vega-Lite specification per predictor against the outcome label.

    Args:
        ds: Labelled dataset.
        parameters: ``label_col`` and ``predictors`` (list of ``{name, kind}``).

    Returns:
        dict[str, dict]: Predictor name -> chart specification.
    """
    label_col = parameters["label_col"]
    charts = {}
    for entry in parameters["predictors"]:
        if PredictorKind(entry["kind"]) is PredictorKind.CATEGORICAL:
            chart = categorical_vs_outcome(ds, entry["name"], label_col)
        else:
            chart = continuous_vs_outcome(ds, entry["name"], label_col)
        charts[entry["name"]] = chart.to_dict()

    log.info("charts_built", predictors=list(charts))
    return charts
