"""Retail reporting pipelines built on polars."""

__version__ = "1.0.0"
