"""Structured outcome returned by every service operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from app.core.retry import ErrorKind

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """Success flag + data, or a failure with kind and upstream message.

    An empty result is a success with no data and ``error_kind`` set to
    ``EMPTY_RESULT``; the caller picks the wording. ``from_cache`` is
    observational and never stored.
    """

    success: bool
    data: T | None = None
    message: str = ""
    error_kind: ErrorKind | None = None
    from_cache: bool = False

    @property
    def is_empty(self) -> bool:
        return self.success and self.error_kind == ErrorKind.EMPTY_RESULT

    @classmethod
    def ok(cls, data: T, *, from_cache: bool = False) -> ServiceResult[T]:
        return cls(success=True, data=data, from_cache=from_cache)

    @classmethod
    def empty(cls, data: T, message: str = "No results found") -> ServiceResult[T]:
        return cls(success=True, data=data, message=message, error_kind=ErrorKind.EMPTY_RESULT)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> ServiceResult[T]:
        return cls(success=False, message=message, error_kind=kind)
