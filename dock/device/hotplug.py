"""Hotplug monitor that turns udev notifications into pipeline runs.

The monitor owns the debounce state machine:

    IDLE  --[matching present event]--> run handler --> ARMED
    ARMED --[absent event, same bus path]--> start removal timer
    ARMED --[removal timer quiet for the quiescence window]--> IDLE

A present event seen while ARMED is re-enumeration noise (for example
the device rebooting after a flash): it never re-runs the handler and it
cancels a pending removal timer, so a transient bus reset does not re-arm
the monitor.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Optional

import pyudev

from ..cancellation import CancellationToken
from ..errors import HotplugChannelError
from ..models import DeviceIdentity, HotplugAction, HotplugEvent

logger = logging.getLogger(__name__)

DEFAULT_QUIESCENCE_WINDOW = 0.5  # seconds
DEFAULT_POLL_TIMEOUT = 1.0  # seconds


class UdevEventSource:
    """Hotplug notifications for USB devices, read from udev over netlink."""

    def __init__(self, context: Optional[pyudev.Context] = None):
        self._context = context
        self._monitor: Optional[pyudev.Monitor] = None

    def open(self) -> None:
        """Subscribe to usb_device events.

        Raises:
            HotplugChannelError: If the netlink monitor cannot be created.
        """
        if self._monitor is not None:
            return
        try:
            if self._context is None:
                self._context = pyudev.Context()
            monitor = pyudev.Monitor.from_netlink(self._context)
            monitor.filter_by(subsystem="usb", device_type="usb_device")
            monitor.start()
        except (OSError, ImportError, ValueError) as e:
            raise HotplugChannelError(f"Cannot open udev monitor: {e}") from e
        self._monitor = monitor
        logger.info("udev hotplug monitor started")

    def close(self) -> None:
        self._monitor = None

    def poll(self, timeout: float) -> Optional[HotplugEvent]:
        """Wait up to `timeout` seconds for the next notification."""
        if self._monitor is None:
            raise HotplugChannelError("Event source is not open")
        device = self._monitor.poll(timeout=timeout)
        if device is None:
            return None
        return self.to_event(device)

    @staticmethod
    def to_event(device) -> HotplugEvent:
        """Convert a pyudev Device to a HotplugEvent.

        Attributes vanish from sysfs on removal, so the udev properties are
        used as a fallback for the ids.
        """
        return HotplugEvent(
            action=HotplugAction.from_udev(device.action),
            bus_path=device.sys_path,
            vendor_id=_read_id(device, "idVendor", "ID_VENDOR_ID"),
            product_id=_read_id(device, "idProduct", "ID_MODEL_ID"),
        )


def _read_id(device, attribute: str, prop: str) -> Optional[str]:
    try:
        return device.attributes.asstring(attribute)
    except (KeyError, UnicodeDecodeError):
        return device.properties.get(prop)


class MonitorState(Enum):
    """Debounce state."""
    IDLE = "idle"
    ARMED = "armed"


class HotplugMonitor:
    """Debounces hotplug events and runs the handler once per physical plug.

    The handler is called synchronously: while it runs, no new events are
    read, so there is never more than one session at a time.
    """

    def __init__(
        self,
        identity: DeviceIdentity,
        handler: Callable[[HotplugEvent], object],
        source: UdevEventSource,
        *,
        token: Optional[CancellationToken] = None,
        quiescence_window: float = DEFAULT_QUIESCENCE_WINDOW,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        on_tick: Optional[Callable[[], object]] = None,
    ):
        """Initialize monitor.

        Args:
            identity: Device to react to.
            handler: Called with the admitted present event (the pipeline).
            source: Where hotplug events come from.
            token: Shutdown latch checked at every loop iteration.
            quiescence_window: Seconds a removal must stay unchallenged.
            poll_timeout: Upper bound for one wait on the event source.
            clock: Monotonic time source (injectable for tests).
            on_tick: Housekeeping hook run every iteration (child reaping).
        """
        self._identity = identity
        self._handler = handler
        self._source = source
        self._token = token or CancellationToken()
        self._quiescence_window = quiescence_window
        self._poll_timeout = poll_timeout
        self._clock = clock
        self._on_tick = on_tick

        self._state = MonitorState.IDLE
        self._tracked_bus_path: Optional[str] = None
        self._removed_at: Optional[float] = None
        self._runs = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def tracked_bus_path(self) -> Optional[str]:
        return self._tracked_bus_path

    @property
    def runs(self) -> int:
        """Number of times the handler has been invoked."""
        return self._runs

    def run(self) -> None:
        """Event loop; returns once shutdown has been requested."""
        logger.info(f"Waiting for USB {self._identity} ...")
        while not self._token.cancelled:
            self.tick()
            if self._on_tick is not None:
                self._on_tick()

            event = self._source.poll(self._poll_timeout)
            if event is not None and not self._token.cancelled:
                self.handle_event(event)
        logger.info("Shutdown requested, hotplug monitor stopped")

    def tick(self) -> None:
        """Complete a pending removal once it has been quiet long enough."""
        if self._state is not MonitorState.ARMED or self._removed_at is None:
            return
        if self._clock() - self._removed_at >= self._quiescence_window:
            logger.info(f"Device at {self._tracked_bus_path} removed, back to idle")
            self._state = MonitorState.IDLE
            self._tracked_bus_path = None
            self._removed_at = None

    def handle_event(self, event: HotplugEvent) -> None:
        """Feed one hotplug event into the state machine."""
        self.tick()
        if event.action is HotplugAction.PRESENT:
            self._on_present(event)
        elif event.action is HotplugAction.ABSENT:
            self._on_absent(event)

    def _on_present(self, event: HotplugEvent) -> None:
        if not self._identity.matches(event.vendor_id, event.product_id):
            return

        if self._state is MonitorState.ARMED:
            if event.bus_path == self._tracked_bus_path and self._removed_at is not None:
                logger.debug(f"Device at {event.bus_path} re-appeared, removal cancelled")
                self._removed_at = None
            else:
                logger.debug(f"Ignoring present event for {event.bus_path} while armed")
            return

        logger.info(f"Wearable detected at {event.bus_path}, processing ...")
        self._runs += 1
        try:
            self._handler(event)
        except Exception as e:
            logger.exception(f"Unhandled error while processing device: {e}")

        self._state = MonitorState.ARMED
        self._tracked_bus_path = event.bus_path
        self._removed_at = None
        logger.info("Waiting for stable removal ...")

    def _on_absent(self, event: HotplugEvent) -> None:
        if self._state is not MonitorState.ARMED:
            return
        if event.bus_path != self._tracked_bus_path:
            return
        self._removed_at = self._clock()
        logger.debug(f"Removal of {event.bus_path} seen, waiting {self._quiescence_window:.2f}s")
