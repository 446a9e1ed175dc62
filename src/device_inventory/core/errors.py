from __future__ import annotations


class InventoryError(Exception):
    """Base class for errors raised by the inventory engine."""


class QueryError(InventoryError):
    """The device channel was unreachable, timed out, or the command failed."""

    def __init__(self, message: str, *, command: str = "", returncode: int | None = None) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class ToolError(InventoryError):
    """An external inspection tool is missing or produced no usable output."""


class CacheIOError(InventoryError):
    """The persisted snapshot could not be read or written."""


class DeviceNotFoundError(InventoryError):
    """No attached device is available to serve the request."""


__all__ = [
    "CacheIOError",
    "DeviceNotFoundError",
    "InventoryError",
    "QueryError",
    "ToolError",
]
