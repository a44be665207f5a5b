"""Matching of requested cache entries against archive listings."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import ArchivedFileRef, CacheFileEntry


@dataclass
class MatchResult:
    """Partition of requested entries by archive availability."""

    matches: dict[int, ArchivedFileRef] = field(default_factory=dict)
    unmatched_required: list[CacheFileEntry] = field(default_factory=list)
    skipped_optional: list[CacheFileEntry] = field(default_factory=list)

    @property
    def skipped_optional_count(self) -> int:
        return len(self.skipped_optional)

    @property
    def expected_count(self) -> int:
        """Entries that had to be found: everything except skipped optional files."""
        return len(self.matches) + len(self.unmatched_required)

    @property
    def all_required_matched(self) -> bool:
        return not self.unmatched_required

    def files_to_download(self, entries: Iterable[CacheFileEntry]) -> dict[int, ArchivedFileRef]:
        """Matched archive files keyed by file id.

        Each file is placed at its entry's results folder and filename, the
        path eviction later deletes, not at the archive's own spelling.
        """
        files = {}
        for entry in entries:
            ref = self.matches.get(entry.entry_id)
            if ref is not None:
                files[ref.file_id] = ref.placed_at(entry.results_folder_name, entry.filename)
        return files


def _match_key(sub_dir_path: str, filename: str) -> tuple[str, str]:
    return sub_dir_path.replace("\\", "/").strip("/").casefold(), filename.casefold()


class ArchiveFileMatcher:
    """Resolve wanted (results folder, filename) pairs to archive files.

    Comparison is case-insensitive. When several revisions share a path the
    one with the highest file id wins.
    """

    def match(
        self,
        wanted: Iterable[CacheFileEntry],
        available: Iterable[ArchivedFileRef],
    ) -> MatchResult:
        newest: dict[tuple[str, str], ArchivedFileRef] = {}
        for ref in available:
            key = _match_key(ref.sub_dir_path, ref.filename)
            current = newest.get(key)
            if current is None or ref.file_id > current.file_id:
                newest[key] = ref

        result = MatchResult()
        for entry in wanted:
            ref = newest.get(_match_key(entry.results_folder_name, entry.filename))
            if ref is not None:
                result.matches[entry.entry_id] = ref
            elif entry.optional:
                result.skipped_optional.append(entry)
            else:
                result.unmatched_required.append(entry)

        return result
