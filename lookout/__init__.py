"""Data services over git trees, language and syntax enrichment, and an analyzer server for automated code review."""

__version__ = "0.1.0"