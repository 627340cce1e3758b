from typing import Sequence

import numpy as np
import pandas as pd
import polars as pl
import structlog
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)

from heart_disease_inference.exceptions import (
    InputLengthMismatchError,
    SelfComparisonError,
    UndefinedAUCError,
    ValidationError,
)
from heart_disease_inference.schemas import BINARY_DOMAIN, EvaluationSummary

log = structlog.get_logger(__name__)

LABELS = sorted(BINARY_DOMAIN)


def _check_lengths(**sequences: Sequence) -> None:
    lengths = {name: len(seq) for name, seq in sequences.items() if seq is not None}
    if len(set(lengths.values())) > 1:
        raise InputLengthMismatchError(f"Sequence lengths differ: {lengths}")


def _check_binary_labels(**sequences: Sequence) -> None:
    for name, seq in sequences.items():
        unexpected = set(np.unique(np.asarray(seq)).tolist()) - BINARY_DOMAIN
        if unexpected:
            raise ValidationError(
                f"{name} holds labels outside {LABELS}: {sorted(unexpected, key=str)}"
            )


def _check_ground_truth(y_true: Sequence, y_pred: Sequence) -> None:
    if y_true is y_pred:
        raise SelfComparisonError(
            "Predicted labels were passed as ground truth; "
            "compare predictions against the true outcome"
        )


def build_confusion_matrix(
    y_true: Sequence[int], y_pred: Sequence[int]
) -> dict[tuple[int, int], int]:
    """
    Counts records per (true label, predicted label) pair over {0, 1} x {0, 1}.

    Raises:
        SelfComparisonError: The same sequence was given as truth and prediction.
        ValidationError: A label lies outside {0, 1}.
        InputLengthMismatchError: The sequences differ in length.
    """
    _check_ground_truth(y_true, y_pred)
    _check_lengths(y_true=y_true, y_pred=y_pred)
    _check_binary_labels(y_true=y_true, y_pred=y_pred)

    matrix = confusion_matrix(np.asarray(y_true), np.asarray(y_pred), labels=LABELS)
    return {
        (t, p): int(matrix[i, j])
        for i, t in enumerate(LABELS)
        for j, p in enumerate(LABELS)
    }


def area_under_roc(y_true: Sequence[int], y_prob: Sequence[float]) -> float:
    """
    Probability that a random positive is scored above a random negative
    (ties count one half).

    Raises:
        InputLengthMismatchError: The sequences differ in length.
        UndefinedAUCError: The true labels hold a single class.
    """
    _check_lengths(y_true=y_true, y_prob=y_prob)
    y_true = np.asarray(y_true)
    if len(np.unique(y_true)) < 2:
        raise UndefinedAUCError("AUC is undefined when the true labels hold one class")
    return float(roc_auc_score(y_true, np.asarray(y_prob, dtype=float)))


def evaluate_classifier(
    y_true: Sequence[int], y_pred: Sequence[int], y_prob: Sequence[float]
) -> EvaluationSummary:
    """Computes accuracy, error, AUC and the confusion matrix of predictions.

    Args:
        y_true: Ground-truth labels.
        y_pred: Thresholded predicted labels.
        y_prob: Predicted probabilities of the positive class.

    Returns:
        EvaluationSummary: Performance of ``y_pred`` / ``y_prob`` against ``y_true``.
    """
    _check_ground_truth(y_true, y_pred)
    _check_lengths(y_true=y_true, y_pred=y_pred, y_prob=y_prob)
    _check_binary_labels(y_true=y_true, y_pred=y_pred)

    matrix = build_confusion_matrix(y_true, y_pred)
    auc = area_under_roc(y_true, y_prob)

    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    accuracy = float(accuracy_score(y_true, y_pred))

    return EvaluationSummary(
        auc=auc,
        accuracy=accuracy,
        classification_error=1.0 - accuracy,
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        f1=float(f1_score(y_true, y_pred, zero_division=0)),
        n_records=len(y_true),
        confusion_matrix=matrix,
    )


def evaluate_predictions(predictions: pl.DataFrame, parameters: dict) -> tuple:
    """
    Evaluates thresholded predictions against the true outcome column.

    Args:
        predictions: Records with truth, predicted label and probability columns.
        parameters: ``target_col``, ``predicted_label_col`` and
            ``probability_col``.

    Returns:
        tuple: Metrics in tracking layout, a unified ``Metric``/``Value``
        frame and the confusion matrix frame.
    """
    target_col = parameters["target_col"]
    pred_col = parameters["predicted_label_col"]
    prob_col = parameters["probability_col"]
    if target_col == pred_col:
        raise SelfComparisonError(
            f"Confusion matrix would compare '{pred_col}' with itself; "
            "set target_col to the ground-truth outcome"
        )

    summary = evaluate_classifier(
        predictions[target_col].to_numpy(),
        predictions[pred_col].to_numpy(),
        predictions[prob_col].to_numpy(),
    )

    metrics = {
        "accuracy": {"value": summary.accuracy, "step": 0},
        "classification_error": {"value": summary.classification_error, "step": 0},
        "precision": {"value": summary.precision, "step": 0},
        "recall": {"value": summary.recall, "step": 0},
        "f1": {"value": summary.f1, "step": 0},
        "roc_auc": {"value": summary.auc, "step": 0},
        "true_positives": {"value": float(summary.true_positives), "step": 0},
        "true_negatives": {"value": float(summary.true_negatives), "step": 0},
        "false_positives": {"value": float(summary.false_positives), "step": 0},
        "false_negatives": {"value": float(summary.false_negatives), "step": 0},
    }

    unified_metrics_df = pd.DataFrame(
        [
            {"Metric": "Accuracy", "Value": summary.accuracy},
            {"Metric": "Classification Error", "Value": summary.classification_error},
            {"Metric": "Precision", "Value": summary.precision},
            {"Metric": "Recall", "Value": summary.recall},
            {"Metric": "F1-Score", "Value": summary.f1},
            {"Metric": "ROC-AUC", "Value": summary.auc},
            {"Metric": "True Positives (TP)", "Value": float(summary.true_positives)},
            {"Metric": "True Negatives (TN)", "Value": float(summary.true_negatives)},
            {"Metric": "False Positives (FP)", "Value": float(summary.false_positives)},
            {"Metric": "False Negatives (FN)", "Value": float(summary.false_negatives)},
        ]
    )

    log.info(
        "predictions_evaluated",
        n_records=summary.n_records,
        accuracy=summary.accuracy,
        roc_auc=summary.auc,
    )
    return metrics, unified_metrics_df, summary.confusion_frame().reset_index()
