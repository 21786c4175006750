"""Daemon wiring: hotplug monitor, pipeline, publisher and signal handling."""
from __future__ import annotations

import logging
import signal
from typing import Optional

from .cancellation import CancellationToken
from .config import DockConfig
from .device.hotplug import HotplugMonitor, UdevEventSource
from .errors import HotplugChannelError
from .pipeline.pipeline import DevicePipeline
from .process.supervisor import ProcessSupervisor
from .transport.base import Publisher
from .transport.mqtt import MqttPublisher

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CHANNEL_ERROR = 1

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class DockDaemon:
    """Runs the dock until a termination signal arrives.

    Example:
        >>> daemon = DockDaemon(load_config("/etc/wearable_dock.yaml"))
        >>> sys.exit(daemon.run())
    """

    def __init__(
        self,
        config: DockConfig,
        *,
        source: Optional[UdevEventSource] = None,
        publisher: Optional[Publisher] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        pipeline: Optional[DevicePipeline] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.config = config
        self.token = token or CancellationToken()
        self.supervisor = supervisor or ProcessSupervisor(self.token)
        self.source = source or UdevEventSource()
        self.publisher = publisher or MqttPublisher.from_config(config)
        self.pipeline = pipeline or DevicePipeline(config, self.supervisor, self.publisher, self.token)
        self.monitor = HotplugMonitor(
            config.identity,
            self.pipeline.run,
            self.source,
            token=self.token,
            quiescence_window=config.quiescence_window,
            poll_timeout=config.event_poll_timeout,
            on_tick=self.supervisor.reap,
        )
        self._previous_handlers = {}

    def handle_signal(self, signum, frame=None) -> None:
        """Latch shutdown and pass the signal on to running helpers."""
        self.token.cancel(signum)
        self.supervisor.forward_signal(signum)

    def install_signal_handlers(self) -> None:
        for sig in HANDLED_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self.handle_signal)

    def restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def run(self) -> int:
        """Serve hotplug events until shutdown.

        Returns:
            EXIT_OK after a clean shutdown, EXIT_CHANNEL_ERROR if the hotplug
            channel cannot be opened.
        """
        try:
            self.source.open()
        except HotplugChannelError as e:
            logger.critical(f"Cannot start: {e}")
            return EXIT_CHANNEL_ERROR

        self.install_signal_handlers()
        try:
            self.publisher.start()
            self.monitor.run()
        finally:
            self.shutdown()
        return EXIT_OK

    def shutdown(self) -> None:
        """Stop the publisher and any helper still running."""
        for handle in self.supervisor.active:
            self.supervisor.terminate(handle)
        self.publisher.stop()
        self.source.close()
        self.restore_signal_handlers()
        logger.info("Dock daemon stopped")
