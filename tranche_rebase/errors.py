from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    ARITHMETIC = "arithmetic"
    TIMING = "timing"
    CAPACITY = "capacity"
    VALIDATION = "validation"
    CONCURRENCY = "concurrency"


class RebaseError(Exception):
    """Base class; ``kind`` lets monitoring tell failures apart without parsing messages."""

    kind: ErrorKind = ErrorKind.ARITHMETIC


class DivideByZero(RebaseError):
    kind = ErrorKind.ARITHMETIC


class ArithmeticOverflow(RebaseError):
    kind = ErrorKind.ARITHMETIC


class RebaseTooSoon(RebaseError):
    kind = ErrorKind.TIMING

    def __init__(self, elapsed_seconds: int, min_interval: int) -> None:
        self.elapsed_seconds = elapsed_seconds
        self.min_interval = min_interval
        self.remaining_seconds = max(min_interval - elapsed_seconds, 0)
        super().__init__(
            f"rebase too soon: {elapsed_seconds}s elapsed, need {min_interval}s "
            f"(retry in {self.remaining_seconds}s)"
        )


class ValueValidationError(RebaseError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, violations: Optional[List[str]] = None) -> None:
        self.violations = violations or []
        super().__init__(message)


class StateConflict(RebaseError):
    kind = ErrorKind.CONCURRENCY

    def __init__(self, expected_version: int, actual_version: int) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"state version changed underneath the rebase: expected {expected_version}, found {actual_version}"
        )
