"""High-level async client for the Z21 command station."""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import Any

import pydantic

from pyz21 import speed_steps
from pyz21._client.correlator import LocoInfoCorrelator
from pyz21._client.railcom import RailComPoller
from pyz21._client.subscriptions import SubscriptionCategory, SubscriptionManager
from pyz21._probe import Probe, icmp_probe
from pyz21._protocol import commands
from pyz21._protocol.framing import split_frames
from pyz21._protocol.parsers import decode_message
from pyz21._transport import Transport, UdpTransport
from pyz21.config import Z21Config
from pyz21.exceptions import Z21ChecksumError, Z21FrameError, Z21TransportError
from pyz21.models import (
    BroadcastFlags,
    BroadcastFlagsInfo,
    ConnectionState,
    ConnectionStateChange,
    DrivingDirection,
    EmergencyStop,
    FirmwareVersion,
    FunctionAction,
    HardwareInfo,
    LocoInfo,
    LocoMode,
    LocoModeInfo,
    LocoSlotInfo,
    NativeSpeedSteps,
    RailComData,
    RBusData,
    SerialNumber,
    SystemState,
    TrackPowerInfo,
    TurnoutInfo,
    TurnoutMode,
    TurnoutModeInfo,
    TurnoutPosition,
    UnknownCommand,
    Z21BaseModel,
    Z21Code,
)

_logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
TransportFactory = Callable[[str, int, int], Awaitable[Transport]]


class Z21Event(enum.StrEnum):
    """Notifications published by :class:`Z21Client`.

    The payload passed to listeners is the decoded record named in the
    comment.
    """

    CONNECTION_STATE = "connection_state"  # ConnectionStateChange
    HARDWARE_INFO = "hardware_info"  # HardwareInfo
    SERIAL_NUMBER = "serial_number"  # SerialNumber
    CODE = "code"  # Z21Code
    FIRMWARE_VERSION = "firmware_version"  # FirmwareVersion
    BROADCAST_FLAGS = "broadcast_flags"  # BroadcastFlagsInfo
    LOCO_INFO = "loco_info"  # LocoInfo
    LOCO_MODE = "loco_mode"  # LocoModeInfo
    LOCO_SLOT_INFO = "loco_slot_info"  # LocoSlotInfo
    TURNOUT_INFO = "turnout_info"  # TurnoutInfo
    TURNOUT_MODE = "turnout_mode"  # TurnoutModeInfo
    TRACK_POWER = "track_power"  # TrackPowerInfo
    SYSTEM_STATE = "system_state"  # SystemState
    RAILCOM_DATA = "railcom_data"  # RailComData
    RBUS_DATA = "rbus_data"  # RBusData
    EMERGENCY_STOP = "emergency_stop"  # EmergencyStop


# Events whose listeners enable a broadcast category on the device.
_EVENT_CATEGORIES: dict[Z21Event, SubscriptionCategory] = {
    Z21Event.LOCO_INFO: SubscriptionCategory.LOCO_INFO,
    Z21Event.RAILCOM_DATA: SubscriptionCategory.RAILCOM,
    Z21Event.RBUS_DATA: SubscriptionCategory.RBUS,
    Z21Event.SYSTEM_STATE: SubscriptionCategory.SYSTEM_STATE,
}


class Z21Client:
    """Async client for the Z21 LAN protocol.

    Usage::

        async with Z21Client(Z21Config(host="192.168.0.111")) as client:
            client.add_listener(Z21Event.LOCO_INFO, print)
            await client.request_loco_info(3)

    Parameters
    ----------
    config : Z21Config or None
        Client configuration; defaults to ``Z21Config()``.
    probe
        Reachability check ``(host, timeout) -> bool``.  Defaults to an
        ICMP echo request.
    transport_factory
        Opens the transport ``(host, port, local_port)``.  Defaults to
        :meth:`UdpTransport.open`.
    """

    def __init__(
        self,
        config: Z21Config | None = None,
        *,
        probe: Probe | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self._config = config or Z21Config()
        self._probe = probe or icmp_probe
        self._transport_factory: TransportFactory = transport_factory or UdpTransport.open
        self._loop: asyncio.AbstractEventLoop | None = None
        self._transport: Transport | None = None
        self._host = self._config.host
        self._port = self._config.port
        self._state = ConnectionState.DISCONNECTED
        self._hardware_info: HardwareInfo | None = None
        self._handshake: asyncio.Future[HardwareInfo] | None = None

        self._receive_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None

        self._clock_lock = threading.Lock()
        self._last_sent = 0.0
        self._last_received = 0.0
        self._probe_failures = 0

        self._listeners_lock = threading.Lock()
        self._listeners: dict[Z21Event, list[Listener]] = {event: [] for event in Z21Event}

        self._subscriptions = SubscriptionManager(
            push_flags=self._push_broadcast_flags,
            on_railcom_active=self._on_railcom_active,
            logger=_logger,
        )
        self._correlator = LocoInfoCorrelator(ttl=self._config.pending_loco_info_ttl, logger=_logger)
        self._railcom = RailComPoller(
            request_next=self._request_next_railcom,
            delay=self._config.railcom_poll_delay,
            interval=self._config.railcom_poll_interval,
            logger=_logger,
        )
        self._handlers: dict[type[Z21BaseModel], Callable[[Any], None]] = {
            HardwareInfo: self._on_hardware_info,
            SerialNumber: lambda message: self._emit(Z21Event.SERIAL_NUMBER, message),
            Z21Code: lambda message: self._emit(Z21Event.CODE, message),
            FirmwareVersion: lambda message: self._emit(Z21Event.FIRMWARE_VERSION, message),
            BroadcastFlagsInfo: lambda message: self._emit(Z21Event.BROADCAST_FLAGS, message),
            LocoInfo: self._on_loco_info,
            LocoModeInfo: self._on_loco_mode,
            LocoSlotInfo: lambda message: self._emit(Z21Event.LOCO_SLOT_INFO, message),
            TurnoutInfo: lambda message: self._emit(Z21Event.TURNOUT_INFO, message),
            TurnoutModeInfo: lambda message: self._emit(Z21Event.TURNOUT_MODE, message),
            TrackPowerInfo: self._on_track_power,
            SystemState: lambda message: self._emit(Z21Event.SYSTEM_STATE, message),
            RailComData: self._on_railcom_data,
            RBusData: lambda message: self._emit(Z21Event.RBUS_DATA, message),
            EmergencyStop: self._on_emergency_stop,
            UnknownCommand: self._on_unknown_command,
        }

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Z21Client:
        if not await self.connect():
            raise Z21TransportError(
                f"Could not connect to Z21 at {self._config.host}:{self._config.port}",
                host=self._config.host,
                port=self._config.port,
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> Z21Config:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def hardware_info(self) -> HardwareInfo | None:
        """Hardware info captured by the handshake, ``None`` while disconnected."""
        return self._hardware_info

    @property
    def host(self) -> str:
        return self._host

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: Z21Event, callback: Listener) -> Callable[[], None]:
        """Register ``callback`` for ``event``.

        Listeners for loco info, RailCom, R-Bus and system state enable
        the matching broadcasts on the command station while at least one
        of them is registered.  The same callable may be registered more
        than once; every registration counts.

        Returns
        -------
        Callable[[], None]
            Removes exactly this registration.  Calling it again is a no-op.
        """
        with self._listeners_lock:
            self._listeners[event].append(callback)
        category = _EVENT_CATEGORIES.get(event)
        if category is not None:
            self._subscriptions.attach(category)

        removed = False

        def _unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            self.remove_listener(event, callback)

        return _unsubscribe

    def remove_listener(self, event: Z21Event, callback: Listener) -> None:
        """Remove one registration of ``callback`` for ``event``."""
        with self._listeners_lock:
            try:
                self._listeners[event].remove(callback)
            except ValueError:
                _logger.debug("Listener %r is not registered for %s", callback, event)
                return
        category = _EVENT_CATEGORIES.get(event)
        if category is not None:
            self._subscriptions.detach(category)

    def _emit(self, event: Z21Event, payload: Any) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners[event])
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                _logger.exception("Listener %r for %s failed", listener, event)

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        _logger.info("Connection state %s -> %s (%s)", previous, state, self._host)
        self._emit(
            Z21Event.CONNECTION_STATE,
            ConnectionStateChange(state=state, previous=previous, host=self._host),
        )

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self, host: str | None = None, port: int | None = None) -> bool:
        """Connect to the command station.

        Probes the host, binds the UDP endpoint and waits for the
        ``LAN_GET_HWINFO`` reply.  Failures are logged and reported as
        ``False``.

        Parameters
        ----------
        host : str or None
            Command station address; defaults to ``config.host``.
        port : int or None
            Command station port; defaults to ``config.port``.

        Returns
        -------
        bool
            ``True`` when connected (or already connected).
        """
        if self.is_connected:
            _logger.warning("Already connected to %s", self._host)
            return True

        config = self._config
        host = host or config.host
        port = port or config.port
        self._loop = asyncio.get_running_loop()
        self._host = host
        self._port = port
        self._set_state(ConnectionState.CONNECTING)

        if config.probe_enabled and not await self._probe(host, config.probe_timeout):
            _logger.error("Z21 at %s is not reachable", host)
            self._set_state(ConnectionState.DISCONNECTED)
            return False

        try:
            self._transport = await self._transport_factory(host, port, config.bind_port)
        except Z21TransportError as exc:
            _logger.error("Could not open UDP endpoint for %s:%d: %s", host, port, exc)
            self._set_state(ConnectionState.DISCONNECTED)
            return False

        self._handshake = self._loop.create_future()
        self._receive_task = self._loop.create_task(self._receive_loop(self._transport), name="z21-receive")
        self._send_command(commands.get_hardware_info())
        try:
            hardware_info = await asyncio.wait_for(self._handshake, timeout=config.handshake_timeout)
        except TimeoutError:
            _logger.error("No hardware info from %s within %.1fs", host, config.handshake_timeout)
            await self._teardown()
            self._set_state(ConnectionState.DISCONNECTED)
            return False
        finally:
            self._handshake = None

        self._hardware_info = hardware_info
        now = time.monotonic()
        with self._clock_lock:
            self._last_received = now
            self._last_sent = now
            self._probe_failures = 0

        self._subscriptions.activate(hardware_info.firmware)
        if self._subscriptions.count(SubscriptionCategory.RAILCOM) > 0:
            self._railcom.start(self._loop)
        self._keepalive_task = self._loop.create_task(self._keepalive_loop(), name="z21-keepalive")
        self._watchdog_task = self._loop.create_task(self._watchdog_loop(), name="z21-watchdog")
        self._set_state(ConnectionState.CONNECTED)
        _logger.info(
            "Connected to %s (%s, firmware %s)",
            host,
            hardware_info.hardware_type.name,
            hardware_info.firmware,
        )
        return True

    async def disconnect(self) -> None:
        """Log off and release all resources.  Safe to call at any time."""
        if self._transport is None and self._state in (ConnectionState.DISCONNECTED, ConnectionState.LOST):
            return
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _teardown(self) -> None:
        await _cancel_task(self._keepalive_task)
        await _cancel_task(self._watchdog_task)
        self._keepalive_task = None
        self._watchdog_task = None
        await _cancel_task(self._railcom.stop())
        self._subscriptions.deactivate()

        if self._transport is not None:
            self._send_command(commands.logoff())

        await _cancel_task(self._receive_task, timeout=self._config.receive_stop_timeout)
        self._receive_task = None

        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
        self._hardware_info = None
        self._correlator.clear()

    async def _connection_lost(self) -> None:
        _logger.error("Connection to %s lost", self._host)
        self._set_state(ConnectionState.LOST)
        await self._teardown()

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _receive_loop(self, transport: Transport) -> None:
        while True:
            try:
                datagram = await transport.receive()
            except Z21TransportError as exc:
                _logger.debug("Receive loop stopped: %s", exc)
                return
            self._process_datagram(datagram)

    async def _keepalive_loop(self) -> None:
        config = self._config
        while True:
            await asyncio.sleep(config.keepalive_interval)
            with self._clock_lock:
                idle = time.monotonic() - self._last_sent
            if idle >= config.keepalive_idle:
                _logger.debug("No command sent for %.0fs, sending keep-alive", idle)
                self._send_command(commands.get_system_state())

    async def _watchdog_loop(self) -> None:
        config = self._config
        while True:
            await asyncio.sleep(config.watchdog_interval)
            with self._clock_lock:
                silence = time.monotonic() - self._last_received
            if silence < config.watchdog_silence:
                continue

            reachable = config.probe_enabled and await self._probe(self._host, config.probe_timeout)
            if reachable:
                _logger.warning("No data from %s for %.0fs, but it answers ping", self._host, silence)
                continue

            with self._clock_lock:
                self._probe_failures += 1
                failures = self._probe_failures
            _logger.warning(
                "No data from %s for %.0fs and no ping reply (%d/%d)",
                self._host,
                silence,
                failures,
                config.watchdog_max_failures,
            )
            if failures >= config.watchdog_max_failures:
                await self._connection_lost()
                return

    # ------------------------------------------------------------------
    # Receive path
    # ------------------------------------------------------------------

    def _process_datagram(self, datagram: bytes) -> None:
        firmware = self._hardware_info.firmware if self._hardware_info is not None else None
        for frame in split_frames(datagram):
            with self._clock_lock:
                self._last_received = time.monotonic()
                self._probe_failures = 0
            try:
                message = decode_message(frame, firmware)
            except Z21ChecksumError as exc:
                _logger.warning("Dropping frame %s: %s", frame.hex(" "), exc)
                continue
            except (Z21FrameError, pydantic.ValidationError) as exc:
                _logger.warning("Dropping malformed frame %s: %s", frame.hex(" "), exc)
                continue
            if message is not None:
                self._handle_message(message)

    def _handle_message(self, message: Z21BaseModel) -> None:
        handler = self._handlers.get(type(message))
        if handler is None:
            _logger.debug("No handler for %s", type(message).__name__)
            return
        handler(message)

    def _on_hardware_info(self, info: HardwareInfo) -> None:
        _logger.info("Hardware info received: %s, firmware %s", info.hardware_type.name, info.firmware)
        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_result(info)
        self._emit(Z21Event.HARDWARE_INFO, info)

    def _on_loco_info(self, info: LocoInfo) -> None:
        result = self._correlator.on_loco_info(info)
        if not result.consumed:
            self._emit(Z21Event.LOCO_INFO, info)
        elif result.completed is not None:
            _logger.info("Loco info for address %d corrected to %s", info.address, result.completed.display_protocol)
            self._emit(Z21Event.LOCO_INFO, result.completed)

    def _on_loco_mode(self, mode_info: LocoModeInfo) -> None:
        result = self._correlator.on_loco_mode(mode_info)
        if not result.consumed:
            self._emit(Z21Event.LOCO_MODE, mode_info)
        elif result.completed is not None:
            _logger.info(
                "Loco info for address %d corrected to %s",
                mode_info.address,
                result.completed.display_protocol,
            )
            self._emit(Z21Event.LOCO_INFO, result.completed)

    def _on_railcom_data(self, data: RailComData) -> None:
        self._railcom.on_railcom_data(data.loco_address)
        self._emit(Z21Event.RAILCOM_DATA, data)

    def _on_track_power(self, info: TrackPowerInfo) -> None:
        _logger.info("Track power state: %s", info.state.name)
        self._emit(Z21Event.TRACK_POWER, info)
        self._refresh_system_state()

    def _on_emergency_stop(self, stop: EmergencyStop) -> None:
        _logger.info("Emergency stop received")
        self._emit(Z21Event.EMERGENCY_STOP, stop)
        self._refresh_system_state()

    def _on_unknown_command(self, _message: UnknownCommand) -> None:
        _logger.info("Z21 reported an unknown X-Bus command")

    def _refresh_system_state(self) -> None:
        if self._subscriptions.count(SubscriptionCategory.SYSTEM_STATE) > 0:
            self._send_command(commands.get_system_state())

    # ------------------------------------------------------------------
    # Send path
    # ------------------------------------------------------------------

    def _send_command(self, data: bytes) -> None:
        transport = self._transport
        if transport is None:
            _logger.warning("Not connected, dropping command %s", data.hex(" "))
            return
        try:
            transport.send(data)
        except Z21TransportError as exc:
            _logger.error("Failed to send command %s: %s", data.hex(" "), exc)
            return
        with self._clock_lock:
            self._last_sent = time.monotonic()
        _logger.debug("Sent %s", data.hex(" "))

    def _push_broadcast_flags(self, flags: BroadcastFlags) -> None:
        self._send_command(commands.set_broadcast_flags(flags))

    def _request_next_railcom(self) -> None:
        self._send_command(commands.get_railcom_data_next())

    def _on_railcom_active(self, active: bool) -> None:
        if not active:
            self._railcom.stop()
        elif self.is_connected and self._loop is not None:
            self._railcom.start(self._loop)

    # ------------------------------------------------------------------
    # System, status, versions
    # ------------------------------------------------------------------

    async def get_hardware_info(self) -> None:
        self._send_command(commands.get_hardware_info())

    async def get_serial_number(self) -> None:
        self._send_command(commands.get_serial_number())

    async def get_code(self) -> None:
        self._send_command(commands.get_code())

    async def get_firmware_version(self) -> None:
        self._send_command(commands.get_firmware_version())

    async def get_broadcast_flags(self) -> None:
        self._send_command(commands.get_broadcast_flags())

    async def get_system_state(self) -> None:
        self._send_command(commands.get_system_state())

    async def set_track_power_on(self) -> None:
        self._send_command(commands.set_track_power_on())

    async def set_track_power_off(self) -> None:
        self._send_command(commands.set_track_power_off())

    async def set_emergency_stop(self) -> None:
        """Stop all locomotives; track power stays on."""
        self._send_command(commands.set_emergency_stop())

    # ------------------------------------------------------------------
    # Locomotives
    # ------------------------------------------------------------------

    async def request_loco_info(self, address: int) -> None:
        """Request loco info together with the loco mode.

        The reply is published as a single ``LOCO_INFO`` event whose speed
        and protocol are corrected for the decoder's mode.
        """
        info_command = commands.get_loco_info(address)
        mode_command = commands.get_loco_mode(address)
        self._correlator.register(address)
        self._send_command(info_command)
        self._send_command(mode_command)

    async def get_loco_mode(self, address: int) -> None:
        self._send_command(commands.get_loco_mode(address))

    async def set_loco_mode(self, address: int, mode: LocoMode) -> None:
        self._send_command(commands.set_loco_mode(address, mode))

    async def set_loco_drive(
        self,
        address: int,
        speed: int,
        native_speed_steps: NativeSpeedSteps,
        direction: DrivingDirection,
        mode: LocoMode = LocoMode.DCC,
    ) -> None:
        """Drive a locomotive.

        Parameters
        ----------
        address : int
            Locomotive address.
        speed : int
            Speed in application steps (0..14, 0..28 or 0..126; for MM
            decoders the scale of the corrected speed steps).
        native_speed_steps : NativeSpeedSteps
            Speed steps as reported by the command station.
        direction : DrivingDirection
            Driving direction.
        mode : LocoMode
            Decoder protocol; MM speeds are scaled to the DCC step count.
        """
        native_speed = speed_steps.encode_speed(speed, native_speed_steps, mode)
        self._send_command(commands.set_loco_drive(address, native_speed, native_speed_steps, direction))

    async def set_loco_function(
        self,
        address: int,
        index: int,
        action: FunctionAction = FunctionAction.TOGGLE,
    ) -> None:
        self._send_command(commands.set_loco_function(address, index, action))

    async def get_loco_slot_info(self, slot: int) -> None:
        self._send_command(commands.get_loco_slot_info(slot))

    # ------------------------------------------------------------------
    # Turnouts
    # ------------------------------------------------------------------

    async def get_turnout_mode(self, address: int) -> None:
        self._send_command(commands.get_turnout_mode(address))

    async def set_turnout_mode(self, address: int, mode: TurnoutMode) -> None:
        self._send_command(commands.set_turnout_mode(address, mode))

    async def set_turnout_position(self, address: int, position: TurnoutPosition) -> None:
        """Switch a turnout with an activate/deactivate pulse."""
        activate = commands.set_turnout(address, position, activate=True)
        deactivate = commands.set_turnout(address, position, activate=False)
        self._send_command(activate)
        await asyncio.sleep(self._config.turnout_pulse_on)
        self._send_command(deactivate)
        await asyncio.sleep(self._config.turnout_pulse_off)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def get_railcom_data(self, address: int | None = None) -> None:
        """Request RailCom data for ``address``, or the next list entry when ``None``."""
        if address is None:
            self._send_command(commands.get_railcom_data_next())
        else:
            self._send_command(commands.get_railcom_data(address))

    async def get_rbus_data(self, group: int) -> None:
        self._send_command(commands.get_rbus_data(group))


async def _cancel_task(task: asyncio.Task[None] | None, timeout: float | None = None) -> None:
    """Cancel ``task`` and wait for it, at most ``timeout`` seconds.

    The calling task is never cancelled, so the watchdog can tear down the
    connection it belongs to.
    """
    if task is None or task is asyncio.current_task():
        return
    if not task.done():
        task.cancel()
    done, _pending = await asyncio.wait({task}, timeout=timeout)
    if not done:
        _logger.warning("Task %s did not stop within %.1fs", task.get_name(), timeout)
        return
    if not task.cancelled() and task.exception() is not None:
        _logger.error("Task %s failed", task.get_name(), exc_info=task.exception())
