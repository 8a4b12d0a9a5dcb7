"""
Result type for collaborator calls that are expected to fail.

External services (insight generation, reverse geocoding) fail routinely:
missing credentials, network errors, rate limits. Those failures are part of
normal operation, so they travel as values instead of exceptions.
"""

from typing import Generic, TypeVar

ValueT = TypeVar("ValueT")


class Result(Generic[ValueT]):
    """
    Explicit error handling without exceptions for expected failures.

    When to use: collaborator calls whose failure the caller must degrade from.
    """

    def __init__(self, value: ValueT | None = None, error: Exception | None = None) -> None:
        if value is not None and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is None and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = value
        self._error: Exception | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: Exception) -> "Result[ValueT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> Exception:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error
