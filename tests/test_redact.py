from __future__ import annotations

from pyblewatch._redact import redact_address


def test_redact_address_masks_device_half() -> None:
    assert redact_address(0xAABBCCDDEEFF) == "AA:BB:CC:**:**:**"


def test_redact_address_disabled_returns_full_address() -> None:
    assert redact_address(0xAABBCCDDEEFF, enabled=False) == "AA:BB:CC:DD:EE:FF"
