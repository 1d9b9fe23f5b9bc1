class SyncConfigurationError(ValueError):
    """Raised when the sheet layout or config does not match what the sync needs."""


class SourceError(RuntimeError):
    """Raised when a KPI/datapoint value could not be scraped."""


class GridRangeError(RuntimeError):
    """A spreadsheet range could not be read or written."""

    action = "access"

    def __init__(self, a1_range: str, cause: BaseException, attempts: int):
        super().__init__(f"Unable to {self.action} {a1_range} after {attempts} attempt(s): {cause}")
        self.a1_range = a1_range
        self.cause = cause
        self.attempts = attempts


class WriteError(GridRangeError):
    """Raised when a range update failed permanently."""

    action = "write"


class ReadError(GridRangeError):
    """Raised when a range could not be read, even after retrying."""

    action = "read"


class SyncAbortedError(RuntimeError):
    """Raised by the legacy KPI run when it must stop the whole process."""
