"""Unit tests for the S3 archive adapter using an in-memory boto3 client."""

import hashlib
from dataclasses import replace
from datetime import UTC, datetime

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from filecacher.adapters import S3ArchiveAdapter
from filecacher.adapters import s3_archive
from filecacher.core import (
    ArchivedFileRef,
    ArchiveError,
    ArchiveOfflineError,
    CacheState,
    OverwriteMode,
)
from filecacher.core.evictor import BYTES_PER_GB, Evictor
from filecacher.core.processor import TaskProcessor

LAST_MODIFIED = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def not_found(operation):
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


class FakePaginator:
    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket, Prefix):
        if self.client.list_error is not None:
            raise self.client.list_error
        keys = sorted(k for k in self.client.objects if k.startswith(Prefix))
        size = self.client.page_size
        for start in range(0, len(keys), size):
            yield {
                "Contents": [
                    {
                        "Key": key,
                        "Size": len(self.client.objects[key]["body"]),
                        "LastModified": LAST_MODIFIED,
                    }
                    for key in keys[start : start + size]
                ]
            }


class FakeS3Client:
    def __init__(self, page_size=2):
        self.objects: dict[str, dict] = {}
        self.page_size = page_size
        self.list_error: Exception | None = None
        self.head_errors: set[str] = set()
        self.download_errors: set[str] = set()
        self.downloads: list[str] = []

    def put(self, key, body=b"", metadata=None):
        self.objects[key] = {"body": body, "metadata": metadata or {}}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def head_object(self, Bucket, Key):
        if Key in self.head_errors:
            raise not_found("HeadObject")
        return {"Metadata": dict(self.objects[Key]["metadata"])}

    def download_file(self, Bucket, Key, Filename):
        self.downloads.append(Key)
        if Key in self.download_errors:
            raise not_found("GetObject")
        with open(Filename, "wb") as f:
            f.write(self.objects[Key]["body"])


@pytest.fixture
def client():
    return FakeS3Client()


@pytest.fixture
def adapter(client, logger):
    return S3ArchiveAdapter(client, "archive", prefix="datasets", logger=logger)


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class TestFindFiles:
    def test_lists_dataset_files(self, client, adapter):
        client.put("datasets/42/Results/a.dat", b"aaaa", {"file-id": "101", "sha256": sha256(b"aaaa")})
        client.put("datasets/42/Results/Run1/b.dat", b"bb")
        client.put("datasets/42/top.txt", b"t", {"file-id": "7"})
        client.put("datasets/42/Results/", b"")
        client.put("datasets/420/other.dat", b"o", {"file-id": "1"})

        refs = {ref.key: ref for ref in adapter.find_files_by_dataset_id(42)}

        assert set(refs) == {
            "datasets/42/Results/a.dat",
            "datasets/42/Results/Run1/b.dat",
            "datasets/42/top.txt",
        }
        a = refs["datasets/42/Results/a.dat"]
        assert (a.file_id, a.sub_dir_path, a.filename, a.size) == (101, "Results", "a.dat", 4)
        assert a.sha256 == sha256(b"aaaa")
        b = refs["datasets/42/Results/Run1/b.dat"]
        assert b.sub_dir_path == "Results/Run1"
        assert b.file_id == int(LAST_MODIFIED.timestamp() * 1000)
        assert b.sha256 is None
        top = refs["datasets/42/top.txt"]
        assert (top.file_id, top.sub_dir_path) == (7, "")

    def test_head_failure_falls_back_to_last_modified(self, client, adapter):
        client.put("datasets/42/a.dat", b"a", {"file-id": "101"})
        client.head_errors.add("datasets/42/a.dat")

        (ref,) = adapter.find_files_by_dataset_id(42)

        assert ref.file_id == int(LAST_MODIFIED.timestamp() * 1000)

    def test_mixed_file_id_sources_are_reported(self, client, adapter, logger):
        client.put("datasets/42/Results/a.dat", b"new", {"file-id": "5"})
        client.put("datasets/42/results/A.DAT", b"old")
        client.put("datasets/42/Results/b.dat", b"b", {"file-id": "6"})

        adapter.find_files_by_dataset_id(42)

        warnings = [
            (msg, fields) for lvl, msg, fields in logger.records if lvl == "warning"
        ]
        assert len(warnings) == 1
        assert "with and without file-id metadata" in warnings[0][0]
        assert warnings[0][1]["paths"] == "results/a.dat"

    def test_consistent_file_id_sources_are_not_reported(self, client, adapter, logger):
        client.put("datasets/42/Results/a.dat", b"a", {"file-id": "5"})
        client.put("datasets/42/results/A.DAT", b"A", {"file-id": "9"})

        adapter.find_files_by_dataset_id(42)

        assert logger.messages("warning") == []

    def test_listing_is_capped(self, client, logger):
        for i in range(7):
            client.put(f"datasets/42/f{i}.dat", b"x")
        adapter = S3ArchiveAdapter(client, "archive", logger=logger, max_file_count=3)

        refs = adapter.find_files_by_dataset_id(42)

        assert len(refs) == 3
        assert any("listing truncated" in m for m in logger.messages("warning"))

    def test_empty_prefix(self, client):
        client.put("42/a.dat", b"a")

        refs = S3ArchiveAdapter(client, "archive", prefix="").find_files_by_dataset_id(42)

        assert [ref.key for ref in refs] == ["42/a.dat"]

    def test_unreachable_endpoint_is_offline(self, client, adapter):
        client.list_error = EndpointConnectionError(endpoint_url="http://archive.local")

        with pytest.raises(ArchiveOfflineError):
            adapter.find_files_by_dataset_id(42)

    def test_client_error_is_archive_error(self, client, adapter):
        client.list_error = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "ListObjectsV2"
        )

        with pytest.raises(ArchiveError, match="dataset 42") as excinfo:
            adapter.find_files_by_dataset_id(42)
        assert not isinstance(excinfo.value, ArchiveOfflineError)


def make_ref(client, file_id, sub_dir, filename, body):
    key = f"datasets/42/{sub_dir}/{filename}" if sub_dir else f"datasets/42/{filename}"
    client.put(key, body)
    return ArchivedFileRef(file_id, sub_dir, filename, size=len(body), sha256=sha256(body), key=key)


class TestDownloadFiles:
    def test_downloads_into_sub_directories(self, client, adapter, tmp_path):
        a = make_ref(client, 1, "Results", "a.dat", b"aaaa")
        b = make_ref(client, 2, "", "b.dat", b"bb")

        summary = adapter.download_files({1: a, 2: b}, tmp_path)

        assert (tmp_path / "Results" / "a.dat").read_bytes() == b"aaaa"
        assert (tmp_path / "b.dat").read_bytes() == b"bb"
        assert (summary.downloaded, summary.skipped, summary.bytes_downloaded) == (2, 0, 6)

    def test_if_changed_skips_identical_files(self, client, adapter, tmp_path):
        same = make_ref(client, 1, "", "same.dat", b"same")
        changed = make_ref(client, 2, "", "changed.dat", b"new!")
        (tmp_path / "same.dat").write_bytes(b"same")
        (tmp_path / "changed.dat").write_bytes(b"old!")

        summary = adapter.download_files({1: same, 2: changed}, tmp_path)

        assert client.downloads == ["datasets/42/changed.dat"]
        assert (summary.downloaded, summary.skipped) == (1, 1)
        assert (tmp_path / "changed.dat").read_bytes() == b"new!"

    def test_never_keeps_existing_files(self, client, adapter, tmp_path):
        ref = make_ref(client, 1, "", "a.dat", b"archive")
        (tmp_path / "a.dat").write_bytes(b"local")

        summary = adapter.download_files({1: ref}, tmp_path, OverwriteMode.NEVER)

        assert summary.skipped == 1
        assert (tmp_path / "a.dat").read_bytes() == b"local"

    def test_always_replaces_existing_files(self, client, adapter, tmp_path):
        ref = make_ref(client, 1, "", "a.dat", b"archive")
        (tmp_path / "a.dat").write_bytes(b"archive")

        summary = adapter.download_files({1: ref}, tmp_path, OverwriteMode.ALWAYS)

        assert summary.downloaded == 1
        assert client.downloads == ["datasets/42/a.dat"]

    def test_failures_are_collected_then_raised(self, client, adapter, tmp_path, logger):
        bad = make_ref(client, 1, "", "bad.dat", b"bad")
        good = make_ref(client, 2, "", "good.dat", b"good")
        client.download_errors.add(bad.key)

        with pytest.raises(ArchiveError, match="Failed to download 1 of 2 files"):
            adapter.download_files({1: bad, 2: good}, tmp_path)

        assert (tmp_path / "good.dat").read_bytes() == b"good"
        assert not (tmp_path / "bad.dat").exists()
        assert not (tmp_path / "bad.dat.part").exists()
        assert any("bad.dat" in m for m in logger.messages("error"))


def test_from_config_builds_session_client(monkeypatch):
    calls = {}

    class FakeSession:
        def __init__(self, profile_name=None, region_name=None):
            calls["session"] = (profile_name, region_name)

        def client(self, service, endpoint_url=None):
            calls["client"] = (service, endpoint_url)
            return FakeS3Client()

    monkeypatch.setattr(s3_archive.boto3, "Session", FakeSession)

    adapter = S3ArchiveAdapter.from_config(
        "archive", "datasets/", endpoint_url="http://minio:9000", region="eu-west-1", profile="lab"
    )

    assert calls == {
        "session": ("lab", "eu-west-1"),
        "client": ("s3", "http://minio:9000"),
    }
    assert adapter.prefix == "datasets"
    assert adapter.dataset_prefix(42) == "datasets/42/"


def test_downloaded_file_is_evicted_from_entry_path(
    client, logger, store, metrics, clock, make_entry, cache_root, disk
):
    client.put("datasets/42/results/DATA.RAW", b"data")
    entry = make_entry(
        1, results_folder_name="Results", filename="data.raw", state=CacheState.IN_PROGRESS
    )
    store.add(entry, make_entry(2))
    store.add_task(9, [1])
    adapter = S3ArchiveAdapter(client, "archive", logger=logger)

    result = TaskProcessor(store, adapter, logger, metrics, clock).process(9)

    cached_path = entry.path_under(str(cache_root))
    assert result.cached_entry_ids == {1}
    assert cached_path.read_bytes() == b"data"
    assert [p.name for p in cached_path.parent.parent.iterdir()] == ["Results"]

    store.entries[1] = replace(entry, state=CacheState.CACHED)
    disk.readings = [BYTES_PER_GB - 1, BYTES_PER_GB + 1]
    evictor = Evictor(store, logger, metrics, clock, probe_for_path=lambda path: disk)

    assert evictor.run(1).success
    assert store.entries[1].state is CacheState.PURGED
    assert not cached_path.exists()
