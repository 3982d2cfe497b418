from enum import Enum


class ResultKind(str, Enum):
    SUCCESS = "Success"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    INVALID_ARGUMENT = "InvalidArgument"
    STORE_ERROR = "StoreError"


class WorkerError(Exception):
    """Base for every classified failure a worker can report."""

    kind = ResultKind.STORE_ERROR

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class InvalidArgument(WorkerError):
    kind = ResultKind.INVALID_ARGUMENT


class NotFound(WorkerError):
    kind = ResultKind.NOT_FOUND


class Conflict(WorkerError):
    kind = ResultKind.CONFLICT


class StoreError(WorkerError):
    # raised for any persistence failure other than a missing key
    kind = ResultKind.STORE_ERROR


class Unauthorized(Exception):
    """Credentials missing, malformed or rejected. Never reaches a worker."""
