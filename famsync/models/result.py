"""Uniform result envelope returned by every use case."""

from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from famsync.models.errors import DomainError

T = TypeVar("T")
U = TypeVar("U")


class Result(Generic[T]):
    """Either a successful value or an error message with a stable code.

    Expected domain failures travel through ``Result``; only truly unexpected
    conditions are raised.
    """

    __slots__ = ("_is_success", "_value", "_error", "_error_code")

    def __init__(
        self,
        is_success: bool,
        value: Optional[T] = None,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        if is_success and error:
            raise ValueError("A successful result cannot carry an error")
        if not is_success and not error:
            raise ValueError("A failed result needs an error message")
        self._is_success = is_success
        self._value = value
        self._error = error
        self._error_code = error_code

    @property
    def is_success(self) -> bool:
        return self._is_success

    @property
    def is_failure(self) -> bool:
        return not self._is_success

    @property
    def value(self) -> T:
        if not self._is_success:
            raise ValueError(f"Cannot read value of a failed result: {self._error}")
        return self._value

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_code(self) -> Optional[str]:
        return self._error_code

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(True, value=value)

    @classmethod
    def fail(cls, error: str, error_code: Optional[str] = None) -> "Result[Any]":
        return cls(False, error=error, error_code=error_code)

    @classmethod
    def from_error(cls, error: DomainError) -> "Result[Any]":
        return cls(False, error=error.message, error_code=error.code)

    @classmethod
    def combine(cls, results: Iterable["Result[Any]"]) -> "Result[List[Any]]":
        """Return the first failure, or a success with all values in order."""
        values: List[Any] = []
        for result in results:
            if result.is_failure:
                return result
            values.append(result.value)
        return cls.ok(values)

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if self.is_failure:
            return self
        return Result.ok(fn(self._value))

    def flat_map(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        if self.is_failure:
            return self
        return fn(self._value)

    def get_or_default(self, default: T) -> T:
        return self._value if self._is_success else default

    def get_or_none(self) -> Optional[T]:
        return self._value if self._is_success else None

    def to_dict(self) -> dict:
        return {
            "is_success": self._is_success,
            "value": self._value,
            "error": self._error,
            "error_code": self._error_code,
        }

    def __repr__(self) -> str:
        if self._is_success:
            return f"Result.ok({self._value!r})"
        return f"Result.fail({self._error!r}, {self._error_code!r})"
