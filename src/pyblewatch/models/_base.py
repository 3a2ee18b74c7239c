"""Base model and address helpers shared by the pyblewatch models.

Every value type inherits from :class:`BleWatchBaseModel`, which makes
instances frozen so a model can be handed to subscribers and stored in
the roster without defensive copies.

BLE hardware addresses travel as 48-bit integers.  :func:`format_address`
and :func:`parse_address` convert between that form and the familiar
colon-separated hex string, which is also the device id.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

#: Largest valid 48-bit address.
MAX_ADDRESS = (1 << 48) - 1


def format_address(address: int) -> str:
    """Render a 48-bit address as ``AA:BB:CC:DD:EE:FF``."""
    if not 0 <= address <= MAX_ADDRESS:
        raise ValueError(f"address out of range: {address!r}")
    raw = f"{address:012X}"
    return ":".join(raw[i : i + 2] for i in range(0, 12, 2))


def parse_address(value: Any) -> int:
    """Convert an address given as int or hex string to its integer form.

    Accepts ``"AA:BB:CC:DD:EE:FF"``, ``"AA-BB-CC-DD-EE-FF"`` and bare
    12-digit hex.  Raises ``ValueError`` for anything else.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid address: {value!r}")
    if isinstance(value, int):
        address = value
    elif isinstance(value, str):
        digits = value.strip().replace(":", "").replace("-", "")
        if len(digits) != 12:
            raise ValueError(f"invalid address: {value!r}")
        try:
            address = int(digits, 16)
        except ValueError as exc:
            raise ValueError(f"invalid address: {value!r}") from exc
    else:
        raise ValueError(f"invalid address: {value!r}")
    if not 0 <= address <= MAX_ADDRESS:
        raise ValueError(f"address out of range: {value!r}")
    return address


def ensure_utc(value: Any) -> Any:
    """Treat naive datetimes as UTC; leave everything else to pydantic."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


BleAddress = Annotated[int, BeforeValidator(parse_address)]
"""Annotated type that accepts int or hex-string addresses."""

UtcDatetime = Annotated[datetime, BeforeValidator(ensure_utc)]
"""Annotated type that makes naive datetimes UTC-aware."""


class BleWatchBaseModel(BaseModel):
    """Base for pyblewatch value types."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )
