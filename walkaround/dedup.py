"""Trims A, B, A, B runs left by loitering near an address boundary."""

from typing import Callable, Optional, Sequence, TypeVar

from .models import AddressBreakpoint

T = TypeVar("T")


def _visible_before(labels: Sequence[Optional[str]], visible: list[bool],
                    index: int, count: int) -> list[Optional[str]]:
    """Labels of the nearest `count` visible elements before index, nearest first"""
    found = []
    for j in range(index - 1, -1, -1):
        if visible[j]:
            found.append(labels[j])
            if len(found) == count:
                break
    return found


def _previous_visible_index(visible: list[bool], index: int) -> Optional[int]:
    for j in range(index - 1, -1, -1):
        if visible[j]:
            return j
    return None


def visible_mask(labels: Sequence[Optional[str]]) -> list[bool]:
    """Which elements stay visible after collapsing oscillations.

    Scanning left to right, element i is compared with its three nearest
    visible predecessors p1, p2, p3. When label(i) == label(p2) and
    label(p1) == label(p3), both i and p1 are hidden. Hidden elements no
    longer count as predecessors. Elements (or predecessors) without a
    label are never part of a match.
    """
    visible = [True] * len(labels)
    if len(labels) <= 3:
        return visible

    for i in range(3, len(labels)):
        current = labels[i]
        if current is None:
            continue
        previous = _visible_before(labels, visible, i, 3)
        if len(previous) < 3 or None in previous:
            continue
        p1, p2, p3 = previous
        if current == p2 and p1 == p3:
            visible[i] = False
            j = _previous_visible_index(visible, i)
            if j is not None:
                visible[j] = False
    return visible


def filter_repeated(items: Sequence[T],
                    label: Callable[[T], Optional[str]] = AddressBreakpoint.city_display) -> list[T]:
    """Items (oldest first) with oscillating repeats removed"""
    mask = visible_mask([label(item) for item in items])
    return [item for item, keep in zip(items, mask) if keep]
