"""Deterministic change classification.

This module intentionally contains no locking and no storage; the roster
store calls it while holding its lock.
"""

from __future__ import annotations

from enum import StrEnum

from pyblewatch.models.device import Device


class ChangeKind(StrEnum):
    NEW = "new"
    UPDATED = "updated"
    NAME_CHANGED = "name_changed"
    UNCHANGED = "unchanged"


def name_changed(previous: str | None, current: str | None) -> bool:
    """Only a rename between two real names counts.

    A device that starts or stops advertising its name is not renamed.
    """
    if not previous or not current:
        return False
    return previous != current


def classify_change(previous: Device | None, current: Device) -> ChangeKind:
    """Classify replacing *previous* with *current* for the same device id."""
    if previous is None:
        return ChangeKind.NEW
    if name_changed(previous.name, current.name):
        return ChangeKind.NAME_CHANGED
    if previous == current:
        return ChangeKind.UNCHANGED
    return ChangeKind.UPDATED
