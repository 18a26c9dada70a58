"""Exceptions raised by zkill."""


class ZkillError(Exception):
    """Base class for all zkill errors."""


class InvalidPortError(ZkillError, ValueError):
    """A port argument is not an integer in 1-65535."""


class InvalidPidError(ZkillError, ValueError):
    """A pid argument is not a positive integer."""


class InvalidPortRangeError(ZkillError, ValueError):
    """A port range filter is malformed or out of bounds."""


class UnsupportedPlatformError(ZkillError, RuntimeError):
    """The running operating system has no resolver."""


class CommandError(ZkillError):
    """A native tool could not be run or exited unsuccessfully."""

    def __init__(self, args: list[str], message: str, returncode: int | None = None) -> None:
        super().__init__(f"{args[0]}: {message}")
        self.command = args
        self.returncode = returncode
