"""Extraction of artifact archives into a destination directory."""

from __future__ import annotations

import errno
import io
import os
import tempfile
import zipfile
from pathlib import Path

import httpx
import pytest

from GitlabArtifact.download import ArtifactStream
from GitlabArtifact.errors import ExtractFailure
from GitlabArtifact import io as io_mod
from GitlabArtifact.io import extract_artifact
from GitlabArtifact.settings import DownloadConfiguration
from GitlabArtifact.testing import build_tar_archive, build_zip_archive


def _leftovers(directory):
    return [path.name for path in directory.iterdir() if path.name.startswith(".gitlab-artifact-")]


def test_extract_zip_recreates_relative_paths(tmp_path, artifact_zip):
    written = extract_artifact(tmp_path, artifact_zip)

    assert (tmp_path / "index.html").read_text() == "<h1>API documentation</h1>"
    assert (tmp_path / "assets" / "style.css").read_text() == "body { margin: 0; }"
    assert sorted(path.relative_to(tmp_path).as_posix() for path in written) == [
        "assets/style.css",
        "index.html",
    ]
    assert _leftovers(tmp_path) == []


def test_extract_creates_missing_destination(tmp_path, artifact_zip):
    destination = tmp_path / "site" / "docs"

    extract_artifact(destination, artifact_zip)

    assert (destination / "index.html").exists()


def test_extract_overwrites_existing_files(tmp_path):
    (tmp_path / "index.html").write_text("stale")

    extract_artifact(tmp_path, build_zip_archive({"index.html": "fresh"}))

    assert (tmp_path / "index.html").read_text() == "fresh"


@pytest.mark.parametrize("compression", ["", "gz", "bz2", "xz"])
def test_extract_tar_archives(tmp_path, compression):
    payload = build_tar_archive({"report/summary.txt": "ok"}, compression=compression)

    extract_artifact(tmp_path, payload)

    assert (tmp_path / "report" / "summary.txt").read_text() == "ok"


def test_extract_consumes_chunk_iterables_and_file_objects(tmp_path, artifact_zip):
    chunks = [artifact_zip[i : i + 7] for i in range(0, len(artifact_zip), 7)]
    extract_artifact(tmp_path / "chunks", iter(chunks))
    extract_artifact(tmp_path / "fileobj", io.BytesIO(artifact_zip))

    assert (tmp_path / "chunks" / "index.html").exists()
    assert (tmp_path / "fileobj" / "assets" / "style.css").exists()


def test_extract_spools_large_artifacts_to_disk(tmp_path):
    config = DownloadConfiguration(spool_max_mb=1)
    blob = os.urandom(2 * 1024 * 1024)  # incompressible, beyond the in-memory threshold
    payload = build_zip_archive({"blob.bin": blob})

    extract_artifact(tmp_path, payload, config=config)

    assert (tmp_path / "blob.bin").read_bytes() == blob


def test_extract_reads_artifact_stream(tmp_path, artifact_zip):
    response = httpx.Response(200, content=artifact_zip)
    stream = ArtifactStream(response, "https://gitlab.example.com/artifact")

    extract_artifact(tmp_path, stream)

    assert (tmp_path / "index.html").exists()


def test_malformed_archive_raises_extract_failure(tmp_path):
    with pytest.raises(ExtractFailure) as excinfo:
        extract_artifact(tmp_path, b"this is not an archive")

    assert excinfo.value.__cause__ is not None
    assert excinfo.value.destination == str(tmp_path)
    assert _leftovers(tmp_path) == []


def test_empty_body_raises_extract_failure(tmp_path):
    with pytest.raises(ExtractFailure):
        extract_artifact(tmp_path, b"")


def test_traversal_members_are_refused_before_writing(tmp_path):
    payload = build_zip_archive({"index.html": "ok", "../escape.txt": "nope"})
    destination = tmp_path / "out"

    with pytest.raises(ExtractFailure, match="Unsafe path"):
        extract_artifact(destination, payload)

    assert not (tmp_path / "escape.txt").exists()
    assert not (destination / "index.html").exists()
    assert _leftovers(destination) == []


def test_symlink_members_are_refused(tmp_path):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        info = zipfile.ZipInfo("link")
        info.external_attr = (0o120777 << 16)
        archive.writestr(info, "/etc/passwd")

    with pytest.raises(ExtractFailure, match="Unsafe link"):
        extract_artifact(tmp_path, buffer.getvalue())


def test_uncompressed_size_limit(tmp_path):
    config = DownloadConfiguration(max_uncompressed_size_gb=1e-6)  # about 1 KiB
    payload = build_zip_archive({"big.txt": "x" * 4096})

    with pytest.raises(ExtractFailure, match="exceeding"):
        extract_artifact(tmp_path, payload, config=config)

    assert not (tmp_path / "big.txt").exists()


def test_write_failure_surfaces_as_extract_failure(tmp_path):
    (tmp_path / "index.html").mkdir()

    with pytest.raises(ExtractFailure) as excinfo:
        extract_artifact(tmp_path, build_zip_archive({"index.html": "file over a directory"}))

    assert isinstance(excinfo.value.__cause__, OSError)


class _SpooledFileWithoutSeekable(tempfile.SpooledTemporaryFile):
    """``SpooledTemporaryFile`` as shipped before Python 3.11."""

    @property
    def seekable(self):
        raise AttributeError("seekable")


def test_zip_extraction_does_not_rely_on_spooled_file_seekable(tmp_path, monkeypatch):
    monkeypatch.setattr(io_mod.tempfile, "SpooledTemporaryFile", _SpooledFileWithoutSeekable)
    blob = os.urandom(2 * 1024 * 1024)

    extract_artifact(tmp_path / "small", build_zip_archive({"a.txt": "a"}))
    config = DownloadConfiguration(spool_max_mb=1)
    extract_artifact(tmp_path / "large", build_zip_archive({"blob.bin": blob}), config=config)

    assert (tmp_path / "small" / "a.txt").read_text() == "a"
    assert (tmp_path / "large" / "blob.bin").read_bytes() == blob


def test_spool_rolls_over_to_a_seekable_file():
    small, small_size = io_mod._spool([b"abc", b"def"], max_size=16)
    large, large_size = io_mod._spool([b"abc", b"def", b"ghi"], max_size=4)

    with small, large:
        assert isinstance(small, io.BytesIO)
        assert not isinstance(large, io.BytesIO)
        assert small.seekable() and large.seekable()
        assert (small_size, large_size) == (6, 9)
        assert large.read() == b"abcdefghi"
        assert small.read() == b"abcdef"


def test_type_conflict_is_refused_before_any_file_moves(tmp_path):
    (tmp_path / "b").mkdir()

    with pytest.raises(ExtractFailure) as excinfo:
        extract_artifact(tmp_path, build_zip_archive({"a.txt": "a", "b": "file over a directory"}))

    assert isinstance(excinfo.value.__cause__, IsADirectoryError)
    assert not (tmp_path / "a.txt").exists()
    assert (tmp_path / "b").is_dir()
    assert _leftovers(tmp_path) == []


def test_directory_over_existing_file_is_refused(tmp_path):
    (tmp_path / "assets").write_text("not a directory")

    with pytest.raises(ExtractFailure) as excinfo:
        extract_artifact(tmp_path, build_zip_archive({"index.html": "ok", "assets/style.css": "body {}"}))

    assert isinstance(excinfo.value.__cause__, NotADirectoryError)
    assert not (tmp_path / "index.html").exists()
    assert (tmp_path / "assets").read_text() == "not a directory"


def test_failed_move_restores_the_destination(tmp_path, monkeypatch):
    (tmp_path / "a.txt").write_text("old")
    real_replace = os.replace

    def replace(src, dst):
        if Path(dst) == tmp_path / "b.txt":
            raise PermissionError(errno.EACCES, "denied", str(dst))
        real_replace(src, dst)

    monkeypatch.setattr(io_mod.os, "replace", replace)
    payload = build_zip_archive({"a.txt": "new", "sub/c.txt": "c", "b.txt": "b"})

    with pytest.raises(ExtractFailure) as excinfo:
        extract_artifact(tmp_path, payload)

    assert isinstance(excinfo.value.__cause__, PermissionError)
    assert (tmp_path / "a.txt").read_text() == "old"
    assert not (tmp_path / "b.txt").exists()
    assert not (tmp_path / "sub").exists()
    assert _leftovers(tmp_path) == []
