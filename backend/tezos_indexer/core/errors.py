"""Error taxonomy shared by the job and API processes."""

from typing import Optional


class TezosIndexerError(Exception):
    """Base class for all indexer errors."""


class ParameterValidationError(TezosIndexerError):
    """A caller supplied an invalid query parameter. Maps to HTTP 400."""

    def __init__(self, parameter: str, message: str):
        super().__init__(message)
        self.parameter = parameter


class ConfigError(TezosIndexerError):
    """Configuration could not be loaded or is invalid."""


class StartupError(TezosIndexerError):
    """A dependency could not be initialized at boot."""


class StoreError(TezosIndexerError):
    """A store operation failed (connection, transaction, constraint)."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


# Upstream sentinel for a clean end of data
UPSTREAM_EOF = "EOF"


class TzktError(TezosIndexerError):
    """TzKT API error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class TzktTransportError(TzktError):
    """The request never produced a response (connect, read, timeout)."""


class TzktStatusError(TzktError):
    """Upstream answered with a non-2xx status."""


class TzktDecodeError(TzktError):
    """Upstream body could not be decoded into delegation records."""


def is_end_of_data(exc: BaseException) -> bool:
    """Return True when an upstream error only signals the end of the data."""
    return isinstance(exc, TzktError) and str(exc) == UPSTREAM_EOF


class SyncError(TezosIndexerError):
    """A sync cycle aborted; ``__cause__`` holds the upstream or store error."""

    def __init__(self, message: str, mode: str):
        super().__init__(message)
        self.mode = mode
