"""Client configuration for pyz21."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyz21._constants import DEFAULT_PORT
from pyz21.exceptions import Z21ConfigError


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
class Z21Config:
    """Client configuration.

    Parameters
    ----------
    host : str
        IP address of the command station.
    port : int
        UDP port of the command station.
    local_port : int or None
        Local UDP port to bind. ``None`` binds the same port as the
        command station, which is what the Z21 app does.  Use ``0`` for
        an ephemeral port.
    handshake_timeout : float
        Seconds to wait for the ``LAN_GET_HWINFO`` reply during connect.
    probe_timeout : float
        Seconds to wait for an ICMP echo reply.
    probe_enabled : bool
        Run the reachability probe before connecting and from the
        watchdog.  Disable on networks that filter ICMP.
    keepalive_interval : float
        Period of the keep-alive check.
    keepalive_idle : float
        Send a keep-alive request when no command went out for this long.
    watchdog_interval : float
        Period of the receive watchdog.
    watchdog_silence : float
        Seconds without any received message before the watchdog probes.
    watchdog_max_failures : int
        Consecutive failed probes after which the connection is lost.
    railcom_poll_delay : float
        Delay before the first RailCom poll tick.
    railcom_poll_interval : float
        Period of the RailCom poll tick.
    receive_stop_timeout : float
        Upper bound when waiting for the receive task on disconnect.
    turnout_pulse_on : float
        Pause after the "on" half of a turnout pulse.
    turnout_pulse_off : float
        Pause after the "off" half of a turnout pulse.
    pending_loco_info_ttl : float
        Seconds a loco info request waits for its mode correction before
        the pending entry is evicted.
    """

    host: str = "192.168.0.111"
    port: int = DEFAULT_PORT
    local_port: int | None = None
    handshake_timeout: float = 3.0
    probe_timeout: float = 2.0
    probe_enabled: bool = True
    keepalive_interval: float = 45.0
    keepalive_idle: float = 40.0
    watchdog_interval: float = 5.0
    watchdog_silence: float = 15.0
    watchdog_max_failures: int = 3
    railcom_poll_delay: float = 1.0
    railcom_poll_interval: float = 2.0
    receive_stop_timeout: float = 1.0
    turnout_pulse_on: float = 0.1
    turnout_pulse_off: float = 0.05
    pending_loco_info_ttl: float = 5.0

    def __post_init__(self) -> None:
        if not 0 < self.port <= 0xFFFF:
            raise Z21ConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.local_port is not None and not 0 <= self.local_port <= 0xFFFF:
            raise Z21ConfigError(f"local_port must be between 0 and 65535, got {self.local_port}")
        if self.watchdog_max_failures < 1:
            raise Z21ConfigError("watchdog_max_failures must be at least 1")
        for name in (
            "handshake_timeout",
            "probe_timeout",
            "keepalive_interval",
            "watchdog_interval",
            "railcom_poll_interval",
        ):
            if getattr(self, name) <= 0:
                raise Z21ConfigError(f"{name} must be positive")

    @property
    def bind_port(self) -> int:
        """Local port the UDP endpoint binds to."""
        return self.port if self.local_port is None else self.local_port

    @classmethod
    def from_env(cls, **overrides: Any) -> Z21Config:
        """Create configuration from environment variables.

        Reads ``Z21_HOST``, ``Z21_PORT`` and the optional ``Z21_*``
        tuning variables.  Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        Z21Config
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        host = env.get("Z21_HOST")
        if host is not None:
            config_kwargs["host"] = host.strip()

        _ENV_INT_MAP = {
            "Z21_PORT": "port",
            "Z21_LOCAL_PORT": "local_port",
            "Z21_WATCHDOG_MAX_FAILURES": "watchdog_max_failures",
        }
        _ENV_FLOAT_MAP = {
            "Z21_HANDSHAKE_TIMEOUT": "handshake_timeout",
            "Z21_PROBE_TIMEOUT": "probe_timeout",
            "Z21_KEEPALIVE_INTERVAL": "keepalive_interval",
            "Z21_KEEPALIVE_IDLE": "keepalive_idle",
            "Z21_WATCHDOG_INTERVAL": "watchdog_interval",
            "Z21_WATCHDOG_SILENCE": "watchdog_silence",
            "Z21_RAILCOM_POLL_DELAY": "railcom_poll_delay",
            "Z21_RAILCOM_POLL_INTERVAL": "railcom_poll_interval",
            "Z21_RECEIVE_STOP_TIMEOUT": "receive_stop_timeout",
            "Z21_TURNOUT_PULSE_ON": "turnout_pulse_on",
            "Z21_TURNOUT_PULSE_OFF": "turnout_pulse_off",
            "Z21_PENDING_LOCO_INFO_TTL": "pending_loco_info_ttl",
        }
        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise Z21ConfigError(f"Invalid numeric Z21_* environment value: {exc}") from exc

        if "probe_enabled" not in overrides:
            config_kwargs["probe_enabled"] = _env_bool(env.get("Z21_PROBE_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
