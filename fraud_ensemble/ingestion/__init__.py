"""Labeled sample loading from DuckDB."""
