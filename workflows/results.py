"""
Result types for the issue sync.

RunResult counts what happened to the items of a page, a target, or a whole
run; results add up with `+`. TargetResult wraps one target's outcome with a
status, the way the pipeline reports each target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


@dataclass
class RunResult:
    """
    Item counts.

    processed: newly stored issues
    skipped: issues already stored (or repeated within the same page)
    invalid: malformed items, not part of total
    """
    processed: int = 0
    skipped: int = 0
    invalid: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.skipped

    @property
    def success_rate(self) -> float:
        """Share of items newly stored, 0.0 when nothing was seen"""
        return self.processed / self.total if self.total else 0.0

    @property
    def has_new_issues(self) -> bool:
        return self.processed > 0

    def summary(self) -> str:
        return (
            f"processed: {self.processed}, skipped: {self.skipped}, "
            f"success rate: {self.success_rate * 100:.1f}%"
        )

    def __add__(self, other: RunResult) -> RunResult:
        if not isinstance(other, RunResult):
            return NotImplemented
        return RunResult(
            processed=self.processed + other.processed,
            skipped=self.skipped + other.skipped,
            invalid=self.invalid + other.invalid,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "invalid": self.invalid,
            "total": self.total,
            "success_rate": round(self.success_rate, 3),
        }


class TargetStatus(str, Enum):
    """Outcome of syncing one target."""
    SUCCESS = "success"
    PARTIAL = "partial"  # stopped early (fetch failed or pause interrupted), counts kept
    ERROR = "error"


@dataclass
class TargetResult:
    """Result from syncing one target."""
    target: str
    status: TargetStatus
    result: RunResult = field(default_factory=RunResult)
    pages_fetched: int = 0
    error_message: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def succeeded(self) -> bool:
        return self.status != TargetStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "pages_fetched": self.pages_fetched,
            **self.result.to_dict(),
            "error_message": self.error_message,
            "timestamp": self.timestamp,
        }
