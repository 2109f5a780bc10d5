"""
Exceptions raised during a collection cycle.

Only ``StateWriteFailed`` is expected to reach the caller of a collection cycle. The
others are handled inside the position tracker and the counter store.
"""

__all__ = [
    "ExporterError",
    "SourceUnavailable",
    "StateCorrupt",
    "StateWriteFailed",
]


class ExporterError(Exception):
    pass


class SourceUnavailable(ExporterError):
    """The log source is missing or unreadable."""


class StateCorrupt(ExporterError):
    """The persisted counter state could not be parsed."""


class StateWriteFailed(ExporterError):
    """The counter state could not be persisted."""
