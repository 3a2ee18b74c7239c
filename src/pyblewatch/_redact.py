"""Helpers for privacy-safe logging.

Hardware addresses identify people's phones and wearables.  When address
redaction is enabled the watcher masks the device-specific half of each
address before it reaches a log line.
"""

from __future__ import annotations

from pyblewatch.models._base import format_address


def redact_address(address: int, *, enabled: bool = True) -> str:
    """Return ``AA:BB:CC:**:**:**`` (or the full address when disabled)."""
    text = format_address(address)
    if not enabled:
        return text
    return text[:8] + ":**:**:**"
