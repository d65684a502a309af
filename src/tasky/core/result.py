# src/tasky/core/result.py

"""
Two-variant result type used by every fallible call in the core.

    res = await executor.execute(task)
    if res.is_success():
        handle(res.unwrap())
    else:
        report(res.unwrap_error())
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


@dataclass(slots=True, frozen=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def map(self, fn: Callable[[T], U]) -> Success[U]:
        return Success(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return fn(self.value)

    def map_error(self, fn: Callable[[object], object]) -> Success[T]:
        return self

    def get_or_else(self, default: T) -> T:
        return self.value

    def unwrap(self) -> T:
        return self.value

    def unwrap_error(self) -> None:
        raise ValueError("Cannot get error from Success")


@dataclass(slots=True, frozen=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def map(self, fn: Callable[[object], object]) -> Failure[E]:
        return self

    def flat_map(self, fn: Callable[[object], object]) -> Failure[E]:
        return self

    def map_error(self, fn: Callable[[E], F]) -> Failure[F]:
        return Failure(fn(self.error))

    def get_or_else(self, default: U) -> U:
        return default

    def unwrap(self) -> None:
        raise ValueError(f"Cannot get value from Failure: {self.error!r}")

    def unwrap_error(self) -> E:
        return self.error


Result = Success[T] | Failure[E]
