from __future__ import annotations


class ChronicleError(Exception):
    """Base error for the chronicle keeper pipeline."""


class StoreFailure(ChronicleError):
    """Event store is unreachable or was never opened. Fatal for a whole batch."""


class UpstreamFailure(ChronicleError, RuntimeError):
    """Text-generation backend failed after retries."""
