"""
Normalized service results.

Services report expected failures as values instead of raising, so callers
can choose whether a failure matters to them (a receipt email never fails a
purchase) and tests can still assert on what went wrong.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UPSTREAM = "upstream"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ServiceResult:
    data: Any = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    status_code: int = 200
    code: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, data: Any = None) -> "ServiceResult":
        return cls(data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        kind: ErrorKind,
        status_code: int = 500,
        code: Optional[str] = None,
    ) -> "ServiceResult":
        return cls(error=error, kind=kind, status_code=status_code, code=code)
