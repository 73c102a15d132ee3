"""Ingestion and configuration errors.

Every user-facing failure carries a message saying what was expected so
the user can fix the input.
"""

from __future__ import annotations


class LayerError(Exception):
    """Base class for layer ingestion/configuration failures."""


class MalformedInput(LayerError):
    """File is not valid CSV/JSON structure, or has no data rows."""


class UnsupportedFormat(LayerError):
    """CSV has no recognizable spatial column set."""


class NoValidRecords(LayerError):
    """Every row failed per-record validation."""

    def __init__(self, message: str, skipped: int = 0) -> None:
        super().__init__(message)
        self.skipped = skipped


class InvalidConfiguration(LayerError):
    """Imported map configuration document is missing required fields."""
