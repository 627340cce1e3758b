"""Loads the raw heart disease table and resolves its categorical codes."""

from .pipeline import create_pipeline

__all__ = ["create_pipeline"]
