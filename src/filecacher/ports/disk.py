"""Disk space port interface."""

from typing import Protocol


class DiskSpacePort(Protocol):
    """Port for measuring free space."""

    def free_bytes(self, path: str) -> int:
        """Free bytes available at path, or -1 if it cannot be determined."""
        ...
