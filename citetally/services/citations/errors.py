from __future__ import annotations


class CitetallyError(Exception):
    """Base class for citation update failures."""


class CodecUsageError(ValueError):
    """The annotation codec was called with unusable arguments."""


class AutoUpdateAlreadyRunningError(CitetallyError):
    """An automatic update run is already in flight."""


class TransientRunError(CitetallyError):
    """A record could not be processed right now; the run may retry it."""


class RateLimitedRunError(TransientRunError):
    """One or more databases answered 429 for the current record."""

    def __init__(self, databases: list[str]) -> None:
        super().__init__(f"rate limited by: {', '.join(databases)}")
        self.databases = list(databases)


class ConnectivityLostError(TransientRunError):
    """The network is unreachable."""
