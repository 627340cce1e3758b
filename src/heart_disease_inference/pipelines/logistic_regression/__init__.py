"""Logistic regression of the outcome: fit, odds ratios and predictions."""

from .pipeline import create_pipeline

__all__ = ["create_pipeline"]
