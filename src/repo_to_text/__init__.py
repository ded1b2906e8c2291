"""Flatten a repository into a single path-annotated text document."""

__version__ = "0.1.0"
