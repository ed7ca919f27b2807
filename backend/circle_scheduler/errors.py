"""Result type and error taxonomy shared by every service operation.

Primary operations never raise for expected failures; they return a
``Result`` carrying either a value or a ``ServiceError``. The HTTP layer
maps ``ErrorKind`` to a status code.
"""
import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    invalid_time_range = "InvalidTimeRange"
    event_not_votable = "EventNotVotable"
    option_not_found = "OptionNotFound"
    forbidden = "Forbidden"
    already_finalized = "AlreadyFinalized"
    invalid_option = "InvalidOption"
    no_times_available = "NoTimesAvailable"
    cannot_modify_finalized = "CannotModifyFinalized"
    store_error = "StoreError"
    not_found = "NotFound"
    conflict = "Conflict"
    validation_failed = "ValidationFailed"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.invalid_time_range: 400,
    ErrorKind.event_not_votable: 409,
    ErrorKind.option_not_found: 404,
    ErrorKind.forbidden: 403,
    ErrorKind.already_finalized: 409,
    ErrorKind.invalid_option: 400,
    ErrorKind.no_times_available: 400,
    ErrorKind.cannot_modify_finalized: 409,
    ErrorKind.store_error: 500,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 409,
    ErrorKind.validation_failed: 400,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(error=ServiceError(kind=kind, message=message))
