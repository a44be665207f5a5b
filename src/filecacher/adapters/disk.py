"""Free disk space adapters."""

import shutil
from pathlib import Path

from ..ports.disk import DiskSpacePort
from ..ports.logger import LoggerPort


def is_network_path(path: str) -> bool:
    """True for UNC-shaped paths such as ``\\\\host\\share`` or ``//host/share``."""
    return path.startswith("\\\\") or path.startswith("//")


class LocalDiskSpaceAdapter:
    """Free space of the local volume holding a path."""

    def __init__(self, logger: LoggerPort | None = None):
        self.logger = logger

    def free_bytes(self, path: str) -> int:
        # Measure the nearest existing ancestor; the cache folder may not exist yet
        target = Path(path)
        while not target.exists() and target.parent != target:
            target = target.parent
        try:
            return shutil.disk_usage(target).free
        except OSError as e:
            if self.logger:
                self.logger.error(f"Error determining the disk free space of {path}: {e}")
            return -1


class NetworkShareSpaceAdapter:
    """Free space of a network share, queried at the share path itself."""

    def __init__(self, logger: LoggerPort | None = None):
        self.logger = logger

    def free_bytes(self, path: str) -> int:
        separator = "\\" if path.startswith("\\\\") else "/"
        share = path if path.endswith(("\\", "/")) else path + separator
        try:
            return shutil.disk_usage(share).free
        except OSError as e:
            if self.logger:
                self.logger.error(f"Error determining the disk free space of share {share}: {e}")
            return -1


def probe_for_path(path: str, logger: LoggerPort | None = None) -> DiskSpacePort:
    """Select the probe that matches the shape of path."""
    if is_network_path(path):
        return NetworkShareSpaceAdapter(logger)
    return LocalDiskSpaceAdapter(logger)
