"""Hash adapters."""

import hashlib
from pathlib import Path


class Sha256Adapter:
    """SHA256 of a file, read in chunks."""

    def sha256(self, path: Path) -> str:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(chunk)
        return digest.hexdigest()
