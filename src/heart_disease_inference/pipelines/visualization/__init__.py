"""Distribution charts of each predictor against the outcome."""

from .pipeline import create_pipeline

__all__ = ["create_pipeline"]
