"""Archive port interface."""

from pathlib import Path
from typing import Protocol

from ..core.models import ArchivedFileRef, DownloadSummary, OverwriteMode


class ArchivePort(Protocol):
    """Port for the remote archive holding the authoritative file copies."""

    def find_files_by_dataset_id(self, dataset_id: int) -> list[ArchivedFileRef]:
        """List every archived file revision belonging to a dataset."""
        ...

    def download_files(
        self,
        files: dict[int, ArchivedFileRef],
        target_dir: Path,
        overwrite: OverwriteMode = OverwriteMode.IF_CHANGED,
    ) -> DownloadSummary:
        """Download files (keyed by file id) beneath target_dir."""
        ...
