"""Watcher configuration for pyblewatch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyblewatch.exceptions import BleWatchConfigError

#: Default number of seconds a device may stay silent before it is evicted.
DEFAULT_HEARTBEAT_TIMEOUT: float = 30.0

SCANNING_MODES: frozenset[str] = frozenset({"active", "passive"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class WatcherConfig:
    """Watcher configuration.

    Parameters
    ----------
    heartbeat_timeout : float
        Seconds a device may go without a fresh advertisement before it is
        removed from the roster.  This is only the initial value; the
        watcher exposes a mutable ``heartbeat_timeout`` property.
    sweep_interval : float
        Period of the background timeout sweep in seconds.  Set to ``0`` to
        disable the timer; stale devices are then only evicted when the
        roster is read or a new advertisement arrives.
    resolve_timeout : float
        Upper bound in seconds for a single device lookup.  A lookup that
        takes longer is treated as a failed resolution.  ``0`` disables
        the bound.
    scanning_mode : str
        ``"active"`` or ``"passive"``.  Passed to radio sources that
        support it.
    redact_addresses : bool
        Mask the lower half of device addresses in log output.
    """

    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    sweep_interval: float = 5.0
    resolve_timeout: float = 10.0
    scanning_mode: str = "active"
    redact_addresses: bool = False

    def __post_init__(self) -> None:
        if self.heartbeat_timeout <= 0:
            raise BleWatchConfigError(f"heartbeat_timeout must be positive, got {self.heartbeat_timeout!r}")
        if self.sweep_interval < 0:
            raise BleWatchConfigError(f"sweep_interval must not be negative, got {self.sweep_interval!r}")
        if self.resolve_timeout < 0:
            raise BleWatchConfigError(f"resolve_timeout must not be negative, got {self.resolve_timeout!r}")
        if self.scanning_mode not in SCANNING_MODES:
            raise BleWatchConfigError(
                f"scanning_mode must be one of {sorted(SCANNING_MODES)}, got {self.scanning_mode!r}"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> WatcherConfig:
        """Create configuration from environment variables.

        Reads the optional ``BLEWATCH_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        WatcherConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_FLOAT_MAP = {
            "BLEWATCH_HEARTBEAT_TIMEOUT": "heartbeat_timeout",
            "BLEWATCH_SWEEP_INTERVAL": "sweep_interval",
            "BLEWATCH_RESOLVE_TIMEOUT": "resolve_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise BleWatchConfigError(f"{env_key} is not a number: {val!r}") from exc

        mode_env = env.get("BLEWATCH_SCANNING_MODE")
        if mode_env is not None and "scanning_mode" not in overrides:
            config_kwargs["scanning_mode"] = mode_env.strip().lower()

        if "redact_addresses" not in overrides:
            config_kwargs["redact_addresses"] = _env_bool(env.get("BLEWATCH_REDACT_ADDRESSES"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
