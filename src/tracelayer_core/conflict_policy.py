"""Conflict ordering, accuracy metric and resolution validation.

Conflict lists are shown unresolved-first: a stable two-key sort on status
rank, then severity rank. BRD accuracy is the share of settled conflicts
(resolved or accepted) as an integer percentage; a project with no conflicts
scores 100.
"""
from typing import Any, Iterable, Optional, TypeVar

from .models import ConflictSeverity, ConflictStatus

T = TypeVar("T")

# Lower rank sorts first
STATUS_ORDER: dict[ConflictStatus, int] = {
    ConflictStatus.DETECTED: 0,
    ConflictStatus.REVIEWING: 1,
    ConflictStatus.ACCEPTED: 2,
    ConflictStatus.RESOLVED: 3,
}

SEVERITY_ORDER: dict[ConflictSeverity, int] = {
    ConflictSeverity.CRITICAL: 0,
    ConflictSeverity.MAJOR: 1,
    ConflictSeverity.MINOR: 2,
}

SETTLED_STATUSES: frozenset[ConflictStatus] = frozenset({
    ConflictStatus.RESOLVED,
    ConflictStatus.ACCEPTED,
})


class EmptyResolutionError(ValueError):
    """Raised when a conflict is settled without a resolution text."""
    pass


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _status_rank(value: Any) -> int:
    try:
        return STATUS_ORDER[ConflictStatus(value)]
    except ValueError:
        return 0


def _severity_rank(value: Any) -> int:
    try:
        return SEVERITY_ORDER[ConflictSeverity(value)]
    except ValueError:
        return SEVERITY_ORDER[ConflictSeverity.MINOR]


def conflict_sort_key(conflict: Any) -> tuple[int, int]:
    """Sort key for a conflict model or dict: (status rank, severity rank).

    Unknown statuses rank as detected, unknown severities as minor.
    """
    return (_status_rank(_field(conflict, "status")), _severity_rank(_field(conflict, "severity")))


def sort_conflicts(conflicts: Iterable[T]) -> list[T]:
    """Return conflicts ordered unresolved-first, then by severity (stable)."""
    return sorted(conflicts, key=conflict_sort_key)


def is_settled(status: Any) -> bool:
    """True when the conflict status is resolved or accepted."""
    try:
        return ConflictStatus(status) in SETTLED_STATUSES
    except ValueError:
        return False


def brd_accuracy(settled: int, total: int) -> int:
    """
    BRD accuracy as an integer percentage.

    Args:
        settled: Number of resolved or accepted conflicts
        total: Number of conflicts

    Returns:
        100 when total is 0, otherwise round(settled / total * 100)
    """
    if settled < 0 or total < 0:
        raise ValueError("Conflict counts cannot be negative")
    if settled > total:
        raise ValueError("Settled conflicts cannot exceed the total")
    if total == 0:
        return 100
    # Halves round up
    return int(settled * 100 / total + 0.5)


def conflict_stats(conflicts: Iterable[Any]) -> dict:
    """Summary counters shown above a conflict list."""
    items = list(conflicts)
    total = len(items)
    settled = sum(1 for c in items if is_settled(_field(c, "status")))
    open_critical = sum(
        1 for c in items
        if _severity_rank(_field(c, "severity")) == SEVERITY_ORDER[ConflictSeverity.CRITICAL]
        and not is_settled(_field(c, "status"))
    )
    return {
        "total": total,
        "resolved": settled,
        "critical": open_critical,
        "accuracy": brd_accuracy(settled, total),
    }


def validate_resolution(resolution: Optional[str]) -> str:
    """
    Validate and normalise a resolution text.

    Raises:
        EmptyResolutionError: If the text is missing or blank
    """
    if resolution is None or not resolution.strip():
        raise EmptyResolutionError("Resolution text is required to settle a conflict")
    return resolution.strip()
