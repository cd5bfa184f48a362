"""
Report state machine and stage outcomes.

Status moves forward along::

    pending -> searching -> previewing -> extracting -> analyzing -> complete

with ``failed`` reachable from every non-terminal status. ``searching`` and
``extracting`` may be re-entered so an interrupted stage can be retried.
``complete`` and ``failed`` accept no further transition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from product_research.models.schemas import ReportStatus
from product_research.utils.errors import InvalidTransitionError

T = TypeVar("T")

S = ReportStatus

ALLOWED_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    S.PENDING: frozenset({S.SEARCHING, S.FAILED}),
    S.SEARCHING: frozenset({S.SEARCHING, S.PREVIEWING, S.FAILED}),
    S.PREVIEWING: frozenset({S.EXTRACTING, S.FAILED}),
    S.EXTRACTING: frozenset({S.EXTRACTING, S.ANALYZING, S.FAILED}),
    S.ANALYZING: frozenset({S.COMPLETE, S.FAILED}),
    S.COMPLETE: frozenset(),
    S.FAILED: frozenset(),
}


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return ReportStatus(target) in ALLOWED_TRANSITIONS[ReportStatus(current)]


def ensure_transition(current: ReportStatus, target: ReportStatus) -> None:
    """
    Raises:
        InvalidTransitionError: If ``current -> target`` is not allowed
    """
    current, target = ReportStatus(current), ReportStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move report from '{current.value}' to '{target.value}'",
            {"current": current.value, "target": target.value},
        )


class OutcomeKind(str, Enum):
    OK = "ok"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """
    Result of a stage method.

    ``ok`` carries the stage value. ``retryable`` means this unit of work did
    not succeed but the report is still live (a skipped URL, for instance).
    ``fatal`` means the report has been marked failed.
    """

    kind: OutcomeKind
    value: Optional[T] = None
    cause: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "StageOutcome[T]":
        return cls(OutcomeKind.OK, value=value)

    @classmethod
    def retryable(cls, cause: str, value: Optional[T] = None) -> "StageOutcome[T]":
        return cls(OutcomeKind.RETRYABLE, value=value, cause=cause)

    @classmethod
    def fatal(cls, cause: str) -> "StageOutcome[T]":
        return cls(OutcomeKind.FATAL, cause=cause)

    @property
    def is_ok(self) -> bool:
        return self.kind == OutcomeKind.OK

    @property
    def is_retryable(self) -> bool:
        return self.kind == OutcomeKind.RETRYABLE

    @property
    def is_fatal(self) -> bool:
        return self.kind == OutcomeKind.FATAL
