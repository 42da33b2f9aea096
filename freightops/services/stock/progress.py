"""
Tri-state progress shared by allocation and pickup aggregation
"""
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")


class Progress:
    """Aggregate progress of a set of lines"""
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


def summarize(
    items: Iterable[T],
    is_applicable: Callable[[T], bool],
    is_complete: Callable[[T], bool],
    has_started: Callable[[T], bool],
) -> str:
    """Full when every applicable item is complete, partial when any item has started"""
    items = list(items)
    applicable = [item for item in items if is_applicable(item)]
    if applicable and all(is_complete(item) for item in applicable):
        return Progress.FULL
    if any(has_started(item) for item in items):
        return Progress.PARTIAL
    return Progress.NONE


def line_is_applicable(line) -> bool:
    # Zero-quantity lines are ignored by both aggregations
    return (line.required_qty or 0) > 0


def allocation_progress(lines) -> str:
    """Allocation progress of demand lines"""
    return summarize(
        lines,
        is_applicable=line_is_applicable,
        is_complete=lambda line: (line.allocated_qty or 0) >= line.required_qty,
        has_started=lambda line: (line.allocated_qty or 0) > 0,
    )


def pickup_progress(lines) -> str:
    """Pickup progress of demand lines"""
    return summarize(
        lines,
        is_applicable=line_is_applicable,
        is_complete=lambda line: (line.allocated_qty or 0) > 0 and (line.picked_qty or 0) >= line.allocated_qty,
        has_started=lambda line: (line.picked_qty or 0) > 0,
    )
