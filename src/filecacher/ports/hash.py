"""Hash port interface."""

from pathlib import Path
from typing import Protocol


class HashPort(Protocol):
    """Port for hash operations."""

    def sha256(self, path: Path) -> str:
        """Calculate SHA256 of file."""
        ...
