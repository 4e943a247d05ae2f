"""
Drag-and-drop ordering for sibling rows (courses, modules in a course, lessons in a module).

A drop names the dragged row and the row it landed on. The dragged row is moved to
the target's position and every row in the new sequence gets order_index 0..N-1.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TypeVar


class Orderable(Protocol):
    id: int
    order_index: int


T = TypeVar("T")
O = TypeVar("O", bound=Orderable)


def array_move(items: Sequence[T], old_index: int, new_index: int) -> list[T]:
    """Return a copy of `items` with the element at old_index moved to new_index."""
    out = list(items)
    if not (0 <= old_index < len(out)) or not (0 <= new_index < len(out)):
        raise IndexError(f"move {old_index}->{new_index} out of range for {len(out)} items")
    out.insert(new_index, out.pop(old_index))
    return out


def move_by_id(rows: Sequence[O], active_id: int, over_id: int | None) -> list[O] | None:
    """
    Apply a drop of row `active_id` onto row `over_id`.

    Returns the new sequence, or None for a no-op drop (no target, or dropped on itself).
    Raises KeyError when either id is not among `rows`.
    """
    if over_id is None or active_id == over_id:
        return None
    ids = [r.id for r in rows]
    if active_id not in ids:
        raise KeyError(active_id)
    if over_id not in ids:
        raise KeyError(over_id)
    return array_move(rows, ids.index(active_id), ids.index(over_id))


def apply_order(rows: Sequence[O]) -> list[int]:
    """Write order_index 0..N-1 onto `rows` in sequence; returns the ids in order."""
    for index, row in enumerate(rows):
        row.order_index = index
    return [r.id for r in rows]


def next_order_index(siblings: Sequence[Orderable]) -> int:
    return len(siblings)
