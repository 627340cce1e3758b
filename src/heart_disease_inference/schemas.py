"""
Typed value objects passed between the analysis pipelines.

Categorical domains are explicit enums resolved once at load time:

- `Sex`: 0 -> Female, 1 -> Male.
- `Outcome`: 0 -> No disease, 1 -> Disease.
- `PredictorKind`: which two-sample test an association check uses.

Results that leave a stage (`TestResult`, `FittedModel`, `EvaluationSummary`)
are frozen dataclasses; tabular outputs stay as data frames.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import pandas as pd
import polars as pl


class Sex(str, Enum):
    FEMALE = "Female"
    MALE = "Male"


class Outcome(str, Enum):
    NO_DISEASE = "No disease"
    DISEASE = "Disease"


class PredictorKind(str, Enum):
    CATEGORICAL = "categorical"
    CONTINUOUS = "continuous"


SEX_CODES = {0: Sex.FEMALE, 1: Sex.MALE}
OUTCOME_CODES = {0: Outcome.NO_DISEASE, 1: Outcome.DISEASE}

SEX_DTYPE = pl.Enum([s.value for s in Sex])
OUTCOME_DTYPE = pl.Enum([o.value for o in Outcome])

BINARY_DOMAIN = frozenset({0, 1})


@dataclass(frozen=True)
class TestResult:
    """Outcome of one univariate association test."""

    __test__ = False

    predictor: str
    kind: PredictorKind
    test: str
    statistic: float
    p_value: float
    dof: float
    n_negative: int
    n_positive: int
    alpha: float = 0.05

    @property
    def significant(self) -> bool:
        return self.p_value < self.alpha

    def to_row(self) -> dict[str, Any]:
        return {
            "predictor": self.predictor,
            "kind": self.kind.value,
            "test": self.test,
            "statistic": self.statistic,
            "p_value": self.p_value,
            "dof": self.dof,
            "n_negative": self.n_negative,
            "n_positive": self.n_positive,
            "significant": self.significant,
        }


@dataclass(frozen=True)
class FittedModel:
    """Learned parameters of a binomial logistic regression.

    Attributes:
        result: The statsmodels results object used for prediction.
        formula: Model formula in patsy notation.
        outcome: Name of the binary outcome column.
        predictors: Predictor columns in formula order.
        levels: Categorical predictor -> levels seen at fit time. The first
            level is the reference category.
        coefficients: Table indexed by term with ``estimate`` and
            ``std_error`` columns, intercept first.
        link: Link function name.
    """

    result: Any
    formula: str
    outcome: str
    predictors: tuple[str, ...]
    levels: Mapping[str, tuple[str, ...]]
    coefficients: pd.DataFrame = field(repr=False)
    link: str = "logit"

    @property
    def n_terms(self) -> int:
        return len(self.coefficients)

    @property
    def numeric_predictors(self) -> tuple[str, ...]:
        return tuple(p for p in self.predictors if p not in self.levels)


@dataclass(frozen=True)
class EvaluationSummary:
    """Classification performance of thresholded predictions."""

    auc: float
    accuracy: float
    classification_error: float
    precision: float
    recall: float
    f1: float
    n_records: int
    confusion_matrix: Mapping[tuple[int, int], int]

    @property
    def true_negatives(self) -> int:
        return self.confusion_matrix[(0, 0)]

    @property
    def false_positives(self) -> int:
        return self.confusion_matrix[(0, 1)]

    @property
    def false_negatives(self) -> int:
        return self.confusion_matrix[(1, 0)]

    @property
    def true_positives(self) -> int:
        return self.confusion_matrix[(1, 1)]

    def confusion_frame(self) -> pd.DataFrame:
        """Confusion matrix with true labels as rows and predictions as columns."""
        labels = sorted(BINARY_DOMAIN)
        frame = pd.DataFrame(
            [[self.confusion_matrix[(t, p)] for p in labels] for t in labels],
            index=pd.Index(labels, name="true_label"),
            columns=pd.Index(labels, name="predicted_label"),
        )
        return frame
