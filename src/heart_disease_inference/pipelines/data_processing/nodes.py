import csv

import polars as pl
import structlog

from heart_disease_inference.exceptions import LoadError
from heart_disease_inference.schemas import (
    BINARY_DOMAIN,
    OUTCOME_CODES,
    OUTCOME_DTYPE,
    SEX_CODES,
    SEX_DTYPE,
)

log = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("age", "sex", "thalach", "target")
NUMERIC_COLUMNS = ("age", "thalach")


def _count_short_rows(filepath: str) -> int:
    # polars pads a row that ends early with nulls, which cannot be told
    # apart from empty cells once parsed, so field counts are taken per line.
    with open(filepath, newline="") as f:
        reader = csv.reader(f)
        header = next(reader, [])
        return sum(1 for row in reader if row and len(row) < len(header))


def load_heart_dataset(
    filepath: str, required_columns: list[str] | tuple[str, ...] = REQUIRED_COLUMNS
) -> pl.DataFrame:
    """
    Reads a headered, comma-delimited heart disease table.

    Every row must carry the same number of fields as the header: rows with
    extra fields fail parsing and rows that end early are rejected. Empty
    cells are allowed outside the required columns. Required numeric columns
    are cast to Float64.

    Args:
        filepath: Path to the delimited file.
        required_columns: Columns that must be present.

    Returns:
        pl.DataFrame: One row per patient record.

    Raises:
        LoadError: The file is missing, unreadable or malformed.
    """
    try:
        ds = pl.read_csv(filepath, raise_if_empty=True, truncate_ragged_lines=False)
        short_rows = _count_short_rows(filepath)
    except (OSError, UnicodeDecodeError, pl.exceptions.PolarsError) as exc:
        log.error("dataset_unreadable", filepath=str(filepath), error=str(exc))
        raise LoadError(f"Cannot read dataset '{filepath}': {exc}") from exc

    if short_rows:
        raise LoadError(
            f"Dataset '{filepath}' has {short_rows} rows with fewer fields than the header"
        )

    missing = [c for c in required_columns if c not in ds.columns]
    if missing:
        raise LoadError(f"Dataset '{filepath}' lacks required columns: {missing}")

    null_counts = ds.select(required_columns).null_count().row(0, named=True)
    incomplete = {col: n for col, n in null_counts.items() if n}
    if incomplete:
        raise LoadError(
            f"Dataset '{filepath}' has empty values in required columns: {incomplete}"
        )

    try:
        ds = ds.with_columns(
            pl.col(c).cast(pl.Float64, strict=True)
            for c in NUMERIC_COLUMNS
            if c in required_columns
        )
    except pl.exceptions.PolarsError as exc:
        raise LoadError(f"Dataset '{filepath}' has non-numeric values: {exc}") from exc

    log.info("dataset_loaded", filepath=str(filepath), rows=ds.height, columns=ds.width)
    return ds


def _check_binary_domain(ds: pl.DataFrame, col: str) -> None:
    try:
        values = set(ds[col].unique().to_list())
    except pl.exceptions.PolarsError as exc:
        raise LoadError(f"Column '{col}' cannot be read as a 0/1 code") from exc
    unexpected = values - BINARY_DOMAIN
    if unexpected:
        raise LoadError(
            f"Column '{col}' holds values outside {sorted(BINARY_DOMAIN)}: "
            f"{sorted(unexpected, key=str)}"
        )


def recode_labels(ds: pl.DataFrame, target_col: str) -> pl.DataFrame:
    """
    Recodes the sex code to a categorical label and derives the outcome label.

    - sex: 0 -> "Female", 1 -> "Male" (``pl.Enum``, Female first).
    - target_label: "No disease" when the outcome is 0, else "Disease".

    Args:
        ds: Loaded dataset with integer ``sex`` and outcome columns.
        target_col: Name of the binary outcome column.

    Returns:
        pl.DataFrame: A new frame with the recoded and derived columns.

    Raises:
        LoadError: A recoded value lies outside {0, 1}.
    """
    for col in ("sex", target_col):
        _check_binary_domain(ds, col)

    sex_labels = {code: sex.value for code, sex in SEX_CODES.items()}
    outcome_labels = {code: outcome.value for code, outcome in OUTCOME_CODES.items()}

    labelled = ds.with_columns(
        pl.col("sex").cast(pl.Int8).replace_strict(sex_labels, return_dtype=SEX_DTYPE),
        pl.col(target_col).cast(pl.Int8),
        pl.col(target_col)
        .cast(pl.Int8)
        .replace_strict(outcome_labels, return_dtype=OUTCOME_DTYPE)
        .alias("target_label"),
    )

    counts = labelled["target_label"].value_counts().rows()
    log.info(
        "labels_recoded",
        rows=labelled.height,
        outcome_counts={str(label): n for label, n in counts},
    )
    return labelled
