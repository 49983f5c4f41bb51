"""Transcript reconciliation and chain-of-density summarization."""

__version__ = "0.3.0"
