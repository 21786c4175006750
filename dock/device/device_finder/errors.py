from ...errors import DockError


class DeviceNotFoundError(DockError):
    """Raised when no matching block device could be found."""
    pass


class MultipleDevicesError(DockError):
    """Raised when more than one matching block device is found."""
    def __init__(self, message, devices):
        super().__init__(message)
        self.devices = devices  # list[BlockDeviceInfo] but avoid circular imports
