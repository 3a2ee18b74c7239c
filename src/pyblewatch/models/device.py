"""Device metadata and roster snapshots."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from pyblewatch.models._base import BleAddress, BleWatchBaseModel, UtcDatetime, format_address
from pyblewatch.models.advertisement import Advertisement


def _clean_name(value: str | None) -> str | None:
    if value is None:
        return None
    name = value.strip()
    return name or None


class DeviceInfo(BleWatchBaseModel):
    """What a resolver knows about an address at lookup time."""

    address: BleAddress
    name: str | None = None
    connected: bool = False
    pairable: bool = False
    paired: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: str | None) -> str | None:
        return _clean_name(value)


class Device(BleWatchBaseModel):
    """Point-in-time snapshot of a visible device.

    A new snapshot replaces the previous one wholesale on every successful
    resolution; nothing is merged field by field.

    Parameters
    ----------
    device_id : str
        Canonical ``AA:BB:CC:DD:EE:FF`` form of ``address``.  This is the
        roster key.
    address : int
        48-bit hardware address.
    name : str or None
        Advertised or resolved name.  Blank names are stored as ``None``.
    last_seen : datetime
        Timestamp of the advertisement that produced this snapshot.
    rssi : int
        Signal strength of that advertisement in dBm.
    connected, pairable, paired : bool
        Resolver state at observation time.
    """

    device_id: str
    address: BleAddress
    name: str | None = None
    last_seen: UtcDatetime
    rssi: int = Field(..., ge=-32768, le=32767)
    connected: bool = False
    pairable: bool = False
    paired: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: str | None) -> str | None:
        return _clean_name(value)

    @model_validator(mode="after")
    def _check_device_id(self) -> Device:
        if self.device_id != format_address(self.address):
            raise ValueError(f"device_id {self.device_id!r} does not match address {format_address(self.address)}")
        return self

    @classmethod
    def from_observation(cls, advertisement: Advertisement, info: DeviceInfo) -> Device:
        """Merge an advertisement's timing and signal with resolver metadata."""
        return cls(
            device_id=format_address(advertisement.address),
            address=advertisement.address,
            name=info.name,
            last_seen=advertisement.timestamp,
            rssi=advertisement.rssi,
            connected=info.connected,
            pairable=info.pairable,
            paired=info.paired,
        )

    def __str__(self) -> str:
        label = self.name if self.name else "[No Name]"
        return f"{label} {self.device_id} ({self.rssi} dBm)"
