"""Exceptions raised by the Heptabase archive."""


class HeptabaseArchiveError(Exception):
    """Base exception for archive and query operations."""


class NotFoundError(HeptabaseArchiveError, LookupError):
    """Raised when a board, card or archive id cannot be resolved."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} '{item_id}' not found.")


class MalformedDataError(HeptabaseArchiveError, ValueError):
    """Raised when an export file cannot be parsed."""


class ConfigurationError(HeptabaseArchiveError, ValueError):
    """Raised when a request cannot be served with the current configuration."""


class ExtractionError(HeptabaseArchiveError, OSError):
    """Raised when an archive is truncated or malformed during extraction."""
