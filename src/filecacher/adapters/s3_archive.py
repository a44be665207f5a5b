"""S3-backed archive adapter."""

import concurrent.futures
import os
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from ..core.errors import ArchiveError, ArchiveOfflineError
from ..core.models import ArchivedFileRef, DownloadSummary, OverwriteMode
from ..ports.hash import HashPort
from ..ports.logger import LoggerPort
from .hash import Sha256Adapter

FILE_ID_METADATA = "file-id"
SHA256_METADATA = "sha256"
DEFAULT_MAX_FILE_COUNT = 10000


class S3ArchiveAdapter:
    """Archive stored in an S3 bucket.

    Objects are laid out as ``<prefix>/<dataset_id>/<subdir...>/<filename>``.
    Each revision carries its numeric file id in the ``file-id`` user
    metadata; objects without one fall back to their LastModified time in
    milliseconds so that newer revisions still sort higher.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        prefix: str = "datasets",
        hasher: HashPort | None = None,
        logger: LoggerPort | None = None,
        max_file_count: int = DEFAULT_MAX_FILE_COUNT,
        max_workers: int = 10,
    ):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.hasher = hasher or Sha256Adapter()
        self.logger = logger
        self.max_file_count = max_file_count
        self.max_workers = max_workers

    @classmethod
    def from_config(
        cls,
        bucket: str,
        prefix: str = "datasets",
        endpoint_url: str | None = None,
        region: str | None = None,
        profile: str | None = None,
        **kwargs: Any,
    ) -> "S3ArchiveAdapter":
        session = boto3.Session(profile_name=profile, region_name=region)
        client = session.client("s3", endpoint_url=endpoint_url)
        return cls(client, bucket, prefix, **kwargs)

    def dataset_prefix(self, dataset_id: int) -> str:
        if self.prefix:
            return f"{self.prefix}/{dataset_id}/"
        return f"{dataset_id}/"

    def find_files_by_dataset_id(self, dataset_id: int) -> list[ArchivedFileRef]:
        prefix = self.dataset_prefix(dataset_id)
        objects: list[dict[str, Any]] = []

        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    if obj["Key"].endswith("/"):
                        continue
                    objects.append(obj)
                if len(objects) >= self.max_file_count:
                    if self.logger:
                        self.logger.warning(
                            f"Dataset {dataset_id} has more than {self.max_file_count} "
                            "archived files; listing truncated"
                        )
                    objects = objects[: self.max_file_count]
                    break
        except EndpointConnectionError as e:
            raise ArchiveOfflineError(f"Archive endpoint unreachable: {e}") from e
        except (BotoCoreError, ClientError) as e:
            raise ArchiveError(f"Failed to list files for dataset {dataset_id}: {e}") from e

        metadata_map = self._fetch_metadata([obj["Key"] for obj in objects])

        refs = []
        id_sources: dict[str, set[bool]] = {}
        for obj in objects:
            key = obj["Key"]
            sub_dir, _, filename = key[len(prefix) :].rpartition("/")
            metadata = metadata_map.get(key, {})
            file_id, from_metadata = self._file_id(metadata, obj)
            id_sources.setdefault(key[len(prefix) :].casefold(), set()).add(from_metadata)
            refs.append(
                ArchivedFileRef(
                    file_id=file_id,
                    sub_dir_path=sub_dir,
                    filename=filename,
                    size=obj.get("Size", 0),
                    sha256=metadata.get(SHA256_METADATA),
                    key=key,
                )
            )

        mixed = sorted(path for path, sources in id_sources.items() if len(sources) > 1)
        if mixed and self.logger:
            self.logger.warning(
                f"Dataset {dataset_id} has revisions with and without {FILE_ID_METADATA} "
                "metadata; LastModified ids outrank metadata ids",
                paths=", ".join(mixed[:10]),
            )
        return refs

    @staticmethod
    def _file_id(metadata: dict[str, str], obj: dict[str, Any]) -> tuple[int, bool]:
        """File id and whether it came from the object metadata."""
        raw = metadata.get(FILE_ID_METADATA)
        if raw:
            try:
                return int(raw), True
            except ValueError:
                pass
        last_modified = obj.get("LastModified")
        if last_modified is None:
            return 0, False
        return int(last_modified.timestamp() * 1000), False

    def _fetch_metadata(self, keys: list[str]) -> dict[str, dict[str, str]]:
        """Head objects in parallel; objects whose head fails get no metadata."""
        metadata_map: dict[str, dict[str, str]] = {}
        if not keys:
            return metadata_map

        def fetch_single_metadata(key: str) -> tuple[str, dict[str, str] | None]:
            try:
                response = self.client.head_object(Bucket=self.bucket, Key=key)
                return key, response.get("Metadata", {})
            except (BotoCoreError, ClientError) as e:
                if self.logger:
                    self.logger.debug(f"Failed to fetch metadata for {key}: {e}")
            return key, None

        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(keys))
        ) as executor:
            for key, metadata in executor.map(fetch_single_metadata, keys):
                if metadata is not None:
                    metadata_map[key] = metadata

        return metadata_map

    def download_files(
        self,
        files: dict[int, ArchivedFileRef],
        target_dir: Path,
        overwrite: OverwriteMode = OverwriteMode.IF_CHANGED,
    ) -> DownloadSummary:
        """Download every file; failures are collected and raised once at the end."""
        summary = DownloadSummary()

        for file_id in sorted(files):
            ref = files[file_id]
            local_path = Path(target_dir) / ref.relative_path
            try:
                if self._is_current(ref, local_path, overwrite):
                    summary.skipped += 1
                    continue
                self._download(ref, local_path)
                summary.downloaded += 1
                summary.bytes_downloaded += ref.size
            except EndpointConnectionError as e:
                raise ArchiveOfflineError(f"Archive endpoint unreachable: {e}") from e
            except (BotoCoreError, ClientError, OSError) as e:
                summary.failed += 1
                summary.errors.append(f"{ref.key}: {e}")
                if self.logger:
                    self.logger.error(f"Failed to download {ref.key} to {local_path}: {e}")

        if summary.failed:
            raise ArchiveError(
                f"Failed to download {summary.failed} of {len(files)} files; "
                f"first error: {summary.errors[0]}"
            )
        return summary

    def _is_current(self, ref: ArchivedFileRef, local_path: Path, overwrite: OverwriteMode) -> bool:
        if not local_path.is_file():
            return False
        if overwrite is OverwriteMode.NEVER:
            return True
        if overwrite is OverwriteMode.ALWAYS:
            return False
        if local_path.stat().st_size != ref.size:
            return False
        if ref.sha256:
            return self.hasher.sha256(local_path) == ref.sha256.lower()
        return True

    def _download(self, ref: ArchivedFileRef, local_path: Path) -> None:
        local_path.parent.mkdir(parents=True, exist_ok=True)
        partial = local_path.with_name(f"{local_path.name}.part")
        try:
            self.client.download_file(self.bucket, ref.key, str(partial))
            os.replace(partial, local_path)
        finally:
            if partial.exists():
                partial.unlink()
