"""Error taxonomy for the scoring engine.

Integrity errors stop the process at startup; the per-request errors abort
a single scoring call and are meant to be caught at the request boundary.
Export validation problems are collected into a list instead of raised one
at a time.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .types import ValidationIssue


class ScoringError(Exception):
    """Base class for everything the engine raises on purpose."""


class MappingIntegrityError(ScoringError):
    pass


class UnmappableKeyError(ScoringError):
    def __init__(self, key: object, index: Optional[int] = None, reason: str = "") -> None:
        self.key = key
        self.index = index
        self.reason = reason
        where = f"response #{index + 1}: " if index is not None else ""
        msg = f"{where}unmappable item key {key!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class OutOfRangeError(ScoringError):
    def __init__(self, value: object, index: Optional[int] = None, low: int = 1, high: int = 6) -> None:
        self.value = value
        self.index = index
        where = f"response #{index + 1}: " if index is not None else ""
        super().__init__(f"{where}value {value!r} outside {low}..{high}")


class IncompletenessError(ScoringError):
    def __init__(
        self,
        message: str,
        shortfalls: Optional[Dict[str, int]] = None,
        total: Optional[int] = None,
    ) -> None:
        # schema id -> number of items missing (negative when over-answered)
        self.shortfalls = dict(shortfalls or {})
        self.total = total
        super().__init__(message)


class VersionMismatchError(ScoringError):
    def __init__(self, received: str, expected: str) -> None:
        self.received = received
        self.expected = expected
        super().__init__(f"mapping version mismatch: got {received!r}, expected {expected!r}")


class ExportValidationError(ScoringError):
    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues: List[ValidationIssue] = list(issues)
        summary = "; ".join(f"{i.field}: {i.problem}" for i in self.issues[:3])
        more = f" (+{len(self.issues) - 3} more)" if len(self.issues) > 3 else ""
        super().__init__(f"export failed validation: {summary}{more}")


__all__ = [
    "ScoringError",
    "MappingIntegrityError",
    "UnmappableKeyError",
    "OutOfRangeError",
    "IncompletenessError",
    "VersionMismatchError",
    "ExportValidationError",
]
