"""Classification performance of the fitted model's predictions."""

from .pipeline import create_pipeline

__all__ = ["create_pipeline"]
