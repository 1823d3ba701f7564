"""Ledger API - bank notification ingestion and categorization."""

__version__ = "0.1.0"
