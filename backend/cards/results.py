"""Explicit success/failure values returned by the service layer.

Services never raise for expected failures (bad input, ownership misses,
provider or storage trouble). They return a ``Result`` whose error carries an
``ErrorKind`` the API layer maps to a status code, and a message that is safe
to show to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Classification of a service-level failure."""

    INVALID_USER = "invalid_user"
    UNAUTHORIZED = "unauthorized"     # Bad credentials
    VALIDATION = "validation"
    NOT_FOUND = "not_found"            # Missing or owned by someone else
    EMPTY_BATCH = "empty_batch"
    OVER_ACCEPTED = "over_accepted"    # Batch would exceed the generated count
    NO_PROPOSALS = "no_proposals"
    PROVIDER = "provider"
    PERSISTENCE = "persistence"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a service call: either ``value`` or ``error`` is set."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> Result[T]:
        return cls(error=ServiceError(kind=kind, message=message))

    def unwrap(self) -> T:
        """Return the value, raising if this is a failure (for tests and scripts)."""
        if self.error is not None:
            raise ValueError(f"{self.error.kind.value}: {self.error.message}")
        return self.value  # type: ignore[return-value]
