"""Exception taxonomy for the dock daemon.

Lower layers raise these; the pipeline catches them per stage so that a
failing session never takes the daemon down. Only HotplugChannelError is
allowed to end the process.
"""


class DockError(RuntimeError):
    """Base class for every error raised by the dock."""
    pass


class ConfigError(DockError):
    """Raised when a configuration file or value is invalid."""
    pass


class HotplugChannelError(DockError):
    """Raised when the hotplug notification channel cannot be opened."""
    pass


class ProcessSpawnError(DockError):
    """Raised when an external helper program cannot be started."""
    def __init__(self, message, command):
        super().__init__(message)
        self.command = command


class PathTooLongError(DockError):
    """Raised when a joined path would not fit the OS path limits."""
    pass


class ExtractionError(DockError):
    """Raised when copying or wiping a tree does not complete."""
    def __init__(self, message, rejected=None):
        super().__init__(message)
        self.rejected = list(rejected or [])


class SessionCollisionError(DockError):
    """Raised when a session directory with the same name already exists."""
    pass


class PublishError(DockError):
    """Raised when the decode/publish stage cannot deliver a session."""
    pass
