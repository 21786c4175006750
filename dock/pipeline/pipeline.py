"""Device processing pipeline.

Runs the stages for one plugged device, strictly in order:

    A  firmware update (if an image is pending), then wait for block storage
    B  mount the storage and wait for the marker
    C  copy the tree into the session directory, wipe the source, unmount
    D  decode the logs and publish every record
    E  archive the session directory

A failing stage aborts the rest of the session. Nothing raised inside a
stage reaches the caller: `run` always returns the Session, whose stage
tells how far it got.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..cancellation import CancellationToken
from ..config import DockConfig
from ..device.device_finder import BlockDeviceInfo, wait_for_block_device
from ..errors import DockError, ExtractionError
from ..firmware.updater import FirmwareUpdater
from ..models import HotplugEvent
from ..process.supervisor import ProcessSupervisor
from ..records.publisher import RecordPublisher
from ..storage.archive import archive_session
from ..storage.extraction import copy_tree, wipe_tree
from ..storage.mount import MountManager
from ..transport.base import Publisher
from .session import Session, SessionStage

logger = logging.getLogger(__name__)


class DevicePipeline:
    """Sequences firmware update, mount/extract, publish and archive.

    Collaborators are built from the config unless given explicitly, which
    is how tests replace the helpers.
    """

    def __init__(
        self,
        config: DockConfig,
        supervisor: ProcessSupervisor,
        publisher: Publisher,
        token: Optional[CancellationToken] = None,
        *,
        firmware: Optional[FirmwareUpdater] = None,
        mounts: Optional[MountManager] = None,
        records: Optional[RecordPublisher] = None,
        device_lookup: Optional[Callable[[], Optional[BlockDeviceInfo]]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._config = config
        self._token = token or CancellationToken()
        self._firmware = firmware or FirmwareUpdater(config, supervisor, self._token)
        self._mounts = mounts or MountManager(config, supervisor, self._token)
        self._records = records or RecordPublisher(
            publisher,
            log_file_names=config.log_file_names,
            logs_subdir=config.logs_subdir,
            record_format=config.record_format,
            publish_interval=config.publish_interval,
            connect_timeout=config.broker_connect_timeout,
            token=self._token,
        )
        self._device_lookup = device_lookup or self._wait_for_block_device
        self._clock = clock

    def run(self, event: Optional[HotplugEvent] = None) -> Session:
        """Process one plugged device.

        Args:
            event: The present event that admitted this run (for logging).

        Returns:
            The Session, in stage ARCHIVED or ABORTED.
        """
        where = f" at {event.bus_path}" if event is not None else ""
        logger.info(f"Processing wearable{where}")

        session: Optional[Session] = None
        try:
            device = self._update_firmware()
            # Session id is taken once the storage is back, right before its directory
            session = self._new_session()
            self._run_stages(session, device)
        except Exception as e:
            if session is None:
                session = self._new_session()
            logger.exception(f"Session {session.id} failed unexpectedly: {e}")
            session.abort(f"unexpected error: {e}")

        logger.info(f"Session {session.id} finished: {session.stage.name.lower()}")
        return session

    def _new_session(self) -> Session:
        session = Session(self._config.extract_base, now=self._clock())
        logger.info(f"Session {session.id} started")
        return session

    def _run_stages(self, session: Session, device: Optional[BlockDeviceInfo]) -> None:
        if self._interrupted(session):
            return
        if device is None:
            session.abort("block device did not appear")
            return

        try:
            session.create_directory()
        except (DockError, OSError) as e:
            session.abort(str(e))
            return

        if not self._mount_and_extract(session, device):
            return
        if self._interrupted(session):
            return
        if not self._decode_and_publish(session):
            return
        self._archive(session)

    def _interrupted(self, session: Session) -> bool:
        if self._token.cancelled:
            session.abort("shutdown requested")
            return True
        return False

    # Stage A

    def _update_firmware(self) -> Optional[BlockDeviceInfo]:
        """Flash a pending image, then locate the (re-enumerated) storage."""
        try:
            self._firmware.update_if_pending()
        except (DockError, OSError) as e:
            logger.error(f"Firmware update stage failed: {e}")
        if self._token.cancelled:
            return None
        return self._device_lookup()

    def _wait_for_block_device(self) -> Optional[BlockDeviceInfo]:
        config = self._config
        return wait_for_block_device(
            config.identity,
            attempts=config.block_device_attempts,
            interval=config.block_device_interval,
            token=self._token,
        )

    # Stages B and C

    def _mount_and_extract(self, session: Session, device: BlockDeviceInfo) -> bool:
        config = self._config
        mounts = self._mounts

        try:
            mounts.prepare_mount_point()
            if not mounts.clear_stale_mount():
                session.abort(f"stale mount at {config.mount_point} could not be removed")
                return False
            mounts.mount(device.devnode)
        except (DockError, OSError) as e:
            session.abort(f"mount failed: {e}")
            return False

        try:
            if not mounts.wait_for_marker():
                session.abort("mounted filesystem did not become ready")
                return False
            session.advance(SessionStage.MOUNTED)

            copy_tree(config.mount_point, session.directory, config.copy_buffer_size)

            if config.read_only_mount:
                logger.info("Read-only mount, device storage not wiped")
            else:
                try:
                    wipe_tree(config.mount_point)
                except ExtractionError as e:
                    logger.warning(f"Device storage not wiped: {e}")
        except (DockError, OSError) as e:
            session.abort(f"extraction failed: {e}")
            return False
        finally:
            unmounted = mounts.unmount()

        if not unmounted:
            session.abort(f"{config.mount_point} could not be unmounted")
            return False
        session.advance(SessionStage.EXTRACTED)
        return True

    # Stage D

    def _decode_and_publish(self, session: Session) -> bool:
        try:
            self._records.publish_session(session.directory)
        except (DockError, OSError) as e:
            session.abort(f"decode/publish failed: {e}")
            return False
        session.advance(SessionStage.DECODED)
        return True

    # Stage E

    def _archive(self, session: Session) -> None:
        target = archive_session(session.directory, self._config.extract_archive_dir)
        if target is None:
            session.abort(f"archive failed, data left in {session.directory}")
            return
        session.directory = target
        session.advance(SessionStage.ARCHIVED)
