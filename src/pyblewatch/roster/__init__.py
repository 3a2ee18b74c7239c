"""Roster layer.

This package is the single source of truth for which devices are
currently visible.  Only the roster store mutates the device map; the
watcher and the timeout sweeper go through it.
"""

from pyblewatch.roster.policy import ChangeKind, classify_change, name_changed
from pyblewatch.roster.store import Roster

__all__ = ["ChangeKind", "Roster", "classify_change", "name_changed"]
