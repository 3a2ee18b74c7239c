"""Raw advertisement events as delivered by an advertisement source."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field

from pyblewatch.models._base import BleAddress, BleWatchBaseModel, UtcDatetime, format_address


class Advertisement(BleWatchBaseModel):
    """A single advertisement reception.

    Carries only what every radio stack reports: who advertised, when it
    was heard and how loud.
    """

    address: BleAddress
    timestamp: UtcDatetime = Field(default_factory=lambda: datetime.now(UTC))
    rssi: int = Field(..., ge=-32768, le=32767, description="Signal strength in dBm")

    @property
    def device_id(self) -> str:
        return format_address(self.address)
