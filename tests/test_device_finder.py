"""Unit tests for the block-device finder."""

import unittest
from unittest.mock import MagicMock

from dock.cancellation import CancellationToken
from dock.device.device_finder import (
    BlockDeviceInfo,
    DeviceNotFoundError,
    MultipleDevicesError,
    find_block_devices,
    find_single_block_device,
    wait_for_block_device,
)
from dock.models import DeviceIdentity

IDENTITY = DeviceIdentity("0001", "0001")


def _usb_parent(vid, pid, serial="A1B2", sys_path="/sys/devices/usb1/1-1"):
    usb = MagicMock()
    usb.sys_path = sys_path
    values = {"idVendor": vid, "idProduct": pid, "serial": serial}

    def asstring(name):
        if values.get(name) is None:
            raise KeyError(name)
        return values[name]

    usb.attributes.asstring.side_effect = asstring
    return usb


def _block_device(devnode, usb):
    device = MagicMock()
    device.device_node = devnode
    device.sys_path = f"/sys/block/{devnode.rsplit('/', 1)[-1]}"
    device.find_parent.return_value = usb
    return device


def _context(*devices):
    context = MagicMock()
    context.list_devices.return_value = list(devices)
    return context


class TestFindBlockDevices(unittest.TestCase):
    """Test enumeration and filtering."""

    def test_matching_device(self):
        context = _context(_block_device("/dev/sdb", _usb_parent("0001", "0001")))
        devices = find_block_devices(IDENTITY, context=context)

        context.list_devices.assert_called_once_with(subsystem="block", DEVTYPE="disk")
        self.assertEqual(len(devices), 1)
        info = devices[0]
        self.assertIsInstance(info, BlockDeviceInfo)
        self.assertEqual(info.devnode, "/dev/sdb")
        self.assertEqual(info.usb_path, "/sys/devices/usb1/1-1")
        self.assertEqual(info.serial_number, "A1B2")

    def test_case_insensitive_ids(self):
        identity = DeviceIdentity("0A1B", "00FF")
        context = _context(_block_device("/dev/sdb", _usb_parent("0a1b", "00ff")))
        self.assertEqual(len(find_block_devices(identity, context=context)), 1)

    def test_filters_other_devices(self):
        context = _context(
            _block_device("/dev/sda", None),                       # internal disk
            _block_device("/dev/sdb", _usb_parent("1234", "5678")),  # other stick
            _block_device("/dev/sdc", _usb_parent("0001", "0001")),
        )
        devices = find_block_devices(IDENTITY, context=context)
        self.assertEqual([d.devnode for d in devices], ["/dev/sdc"])

    def test_skips_devices_without_node(self):
        device = _block_device("/dev/sdb", _usb_parent("0001", "0001"))
        device.device_node = None
        self.assertEqual(find_block_devices(IDENTITY, context=_context(device)), [])

    def test_custom_matcher(self):
        context = _context(_block_device("/dev/sdb", _usb_parent("1234", "5678")))
        devices = find_block_devices(IDENTITY, context=context, matcher=lambda info: True)
        self.assertEqual(len(devices), 1)


class TestFindSingleBlockDevice(unittest.TestCase):
    """Test the 0 / 1 / many decision."""

    def test_none(self):
        with self.assertRaises(DeviceNotFoundError):
            find_single_block_device(IDENTITY, context=_context())

    def test_multiple(self):
        context = _context(
            _block_device("/dev/sdb", _usb_parent("0001", "0001")),
            _block_device("/dev/sdc", _usb_parent("0001", "0001", sys_path="/sys/devices/usb1/1-2")),
        )
        with self.assertRaises(MultipleDevicesError) as ctx:
            find_single_block_device(IDENTITY, context=context)
        self.assertEqual(len(ctx.exception.devices), 2)

    def test_single(self):
        context = _context(_block_device("/dev/sdb", _usb_parent("0001", "0001")))
        self.assertEqual(find_single_block_device(IDENTITY, context=context).devnode, "/dev/sdb")


class TestWaitForBlockDevice(unittest.TestCase):
    """Test the bounded retry loop."""

    def test_appears_after_retries(self):
        device = _block_device("/dev/sdb", _usb_parent("0001", "0001"))
        context = MagicMock()
        context.list_devices.side_effect = [[], [], [device]]

        info = wait_for_block_device(IDENTITY, attempts=5, interval=0.0, context=context)

        self.assertEqual(info.devnode, "/dev/sdb")
        self.assertEqual(context.list_devices.call_count, 3)

    def test_gives_up(self):
        context = _context()
        self.assertIsNone(wait_for_block_device(IDENTITY, attempts=3, interval=0.0, context=context))
        self.assertEqual(context.list_devices.call_count, 3)

    def test_cancelled(self):
        token = CancellationToken()
        token.cancel()
        context = _context()
        self.assertIsNone(wait_for_block_device(IDENTITY, attempts=3, token=token, context=context))
        context.list_devices.assert_not_called()


if __name__ == "__main__":
    unittest.main()
