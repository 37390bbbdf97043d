"""Error types shared by the store client and the API layer."""


class PracticeError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500


class Unauthorized(PracticeError):
    """Missing, malformed or rejected bearer credential."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class UpstreamReadFailure(PracticeError):
    """A read against the external store failed."""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Failed to read {table}: {reason}")


class UpstreamWriteFailure(PracticeError):
    """A write against the external store failed."""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Failed to write {table}: {reason}")
