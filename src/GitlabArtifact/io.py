"""Streaming, path-safe extraction of artifact archives into a directory."""

from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
import tarfile
import tempfile
import zipfile
import zlib
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import IO, Iterable, Iterator, List, Optional, Tuple, Union

from .download import ArtifactStream
from .errors import ConfigError, ExtractFailure
from .settings import DownloadConfiguration

__all__ = ["ArtifactSource", "extract_artifact"]

LOGGER = logging.getLogger("GitlabArtifact.io")

ArtifactSource = Union[ArtifactStream, bytes, IO[bytes], Iterable[bytes]]

_CHUNK_SIZE = 1 << 16
_STAGING_PREFIX = ".gitlab-artifact-"


def _iter_source(source: ArtifactSource) -> Iterator[bytes]:
    if isinstance(source, (bytes, bytearray)):
        yield bytes(source)
        return
    if isinstance(source, ArtifactStream):
        yield from source.iter_bytes(_CHUNK_SIZE)
        return
    read = getattr(source, "read", None)
    if callable(read):
        yield from iter(lambda: read(_CHUNK_SIZE), b"")
        return
    yield from source  # type: ignore[misc]


def _spool(source: ArtifactSource, max_size: int) -> Tuple[IO[bytes], int]:
    """Copy ``source`` into a seekable buffer, moving to a temporary file past ``max_size`` bytes.

    ``zipfile`` needs ``seek``/``tell``/``seekable`` on the whole object, which
    ``SpooledTemporaryFile`` only provides from Python 3.11 onwards.
    """

    spool: IO[bytes] = BytesIO()
    received = 0
    try:
        for chunk in _iter_source(source):
            if not chunk:
                continue
            received += len(chunk)
            if received > max_size and isinstance(spool, BytesIO):
                rolled = tempfile.TemporaryFile()
                rolled.write(spool.getvalue())
                spool.close()
                spool = rolled
            spool.write(chunk)
        spool.seek(0)
    except BaseException:
        spool.close()
        raise
    return spool, received


def _validate_member_path(member_name: str) -> Optional[Path]:
    """Validate archive member paths to prevent traversal attacks.

    Returns ``None`` for entries naming the archive root itself (``./``).
    """

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise ConfigError(f"Unsafe absolute path detected in archive: {member_name}")
    parts = [part for part in relative.parts if part not in {"", "."}]
    if not parts:
        return None
    if ".." in parts:
        raise ConfigError(f"Unsafe path detected in archive: {member_name}")
    return Path(*parts)


def _check_size(total_uncompressed: int, limit: int) -> None:
    if total_uncompressed > limit:
        raise ConfigError(
            f"archive expands to {total_uncompressed} bytes, exceeding the {limit} byte limit"
        )


def _extract_zip(spool: IO[bytes], staging: Path, limit: int) -> List[Path]:
    extracted: List[Path] = []
    with zipfile.ZipFile(spool) as archive:
        members: List[Tuple[zipfile.ZipInfo, Path]] = []
        total_uncompressed = 0
        for member in archive.infolist():
            member_path = _validate_member_path(member.filename)
            if member_path is None:
                if member.is_dir():
                    continue
                raise ConfigError(f"Empty path detected in archive: {member.filename!r}")
            mode = (member.external_attr >> 16) & 0xFFFF
            if stat.S_IFMT(mode) == stat.S_IFLNK:
                raise ConfigError(f"Unsafe link detected in archive: {member.filename}")
            if not member.is_dir():
                total_uncompressed += int(member.file_size)
            members.append((member, member_path))
        _check_size(total_uncompressed, limit)
        for member, member_path in members:
            target_path = staging / member_path
            if member.is_dir():
                target_path.mkdir(parents=True, exist_ok=True)
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member, "r") as source, target_path.open("wb") as target:
                shutil.copyfileobj(source, target, _CHUNK_SIZE)
            extracted.append(member_path)
    return extracted


def _extract_tar(spool: IO[bytes], staging: Path, limit: int) -> List[Path]:
    extracted: List[Path] = []
    with tarfile.open(fileobj=spool, mode="r:*") as archive:
        members: List[Tuple[tarfile.TarInfo, Path]] = []
        total_uncompressed = 0
        for member in archive.getmembers():
            member_path = _validate_member_path(member.name)
            if member_path is None:
                if member.isdir():
                    continue
                raise ConfigError(f"Empty path detected in archive: {member.name!r}")
            if member.isdir():
                members.append((member, member_path))
                continue
            if member.islnk() or member.issym():
                raise ConfigError(f"Unsafe link detected in archive: {member.name}")
            if not member.isfile():
                raise ConfigError(f"Unsupported tar member type encountered: {member.name}")
            total_uncompressed += int(member.size)
            members.append((member, member_path))
        _check_size(total_uncompressed, limit)
        for member, member_path in members:
            target_path = staging / member_path
            if member.isdir():
                target_path.mkdir(parents=True, exist_ok=True)
                continue
            target_path.parent.mkdir(parents=True, exist_ok=True)
            extracted_file = archive.extractfile(member)
            if extracted_file is None:
                raise ConfigError(f"Failed to extract member: {member.name}")
            with extracted_file as source, target_path.open("wb") as target:
                shutil.copyfileobj(source, target, _CHUNK_SIZE)
            extracted.append(member_path)
    return extracted


def _check_targets(destination: Path, files: List[Path], directories: List[Path]) -> None:
    """Refuse to promote when a staged entry would replace an entry of another type."""

    for relative in files:
        target = destination / relative
        if target.is_dir() and not target.is_symlink():
            raise IsADirectoryError(
                errno.EISDIR, "archive file would replace a directory", str(target)
            )
    for relative in [*files, *directories]:
        parents = list(relative.parents)[:-1]
        if relative in directories:
            parents.insert(0, relative)
        for parent in parents:
            candidate = destination / parent
            if candidate.exists() and not candidate.is_dir():
                raise NotADirectoryError(
                    errno.ENOTDIR, "archive directory would replace a file", str(candidate)
                )


def _promote(staging: Path, destination: Path, relative_paths: List[Path]) -> List[Path]:
    """Move staged files over their final paths, replacing existing files.

    Either every file lands or the destination is restored: replaced files
    are parked in a backup directory and moved back if a later move fails.
    """

    directories = sorted(p.relative_to(staging) for p in staging.rglob("*") if p.is_dir())
    _check_targets(destination, relative_paths, directories)

    backup = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=destination))
    created: List[Path] = []
    moved: List[Tuple[Path, Optional[Path]]] = []
    try:
        for directory in [*directories, *(relative.parent for relative in relative_paths)]:
            for relative in reversed([directory, *directory.parents]):
                path = destination / relative
                if not path.exists():
                    path.mkdir()
                    created.append(path)
        for index, relative in enumerate(relative_paths):
            target = destination / relative
            parked: Optional[Path] = None
            if target.exists() or target.is_symlink():
                parked = backup / str(index)
                os.replace(target, parked)
            moved.append((target, parked))
            os.replace(staging / relative, target)
    except OSError:
        _rollback(moved, created)
        raise
    finally:
        shutil.rmtree(backup, ignore_errors=True)
    return [target for target, _ in moved]


def _rollback(moved: List[Tuple[Path, Optional[Path]]], created: List[Path]) -> None:
    for target, parked in reversed(moved):
        try:
            if parked is not None:
                os.replace(parked, target)
            elif target.exists():
                target.unlink()
        except OSError:
            LOGGER.warning("could not restore %s after failed extraction", target, exc_info=True)
    for path in reversed(created):
        try:
            path.rmdir()
        except OSError:
            LOGGER.warning("could not remove %s after failed extraction", path, exc_info=True)


def extract_artifact(
    destination_dir: Union[str, Path],
    artifact: ArtifactSource,
    *,
    config: Optional[DownloadConfiguration] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Unpack ``artifact`` into ``destination_dir`` preserving its internal layout.

    The source is read chunk by chunk into a seekable buffer that stays
    in memory up to ``config.spool_max_mb`` and moves to disk beyond that.
    ZIP (GitLab's default artifact format) and tar archives in any compression
    are recognised by content.  Every member is validated before anything is
    written, members are unpacked into a staging directory beside the
    destination, and only then moved over existing files.

    Args:
        destination_dir: Directory that receives the archive contents.
        artifact: :class:`ArtifactStream`, raw bytes, a binary file object, or
            an iterable of byte chunks.  It is consumed exactly once.
        config: Download configuration supplying spool and size limits.
        logger: Logger for progress output; defaults to ``GitlabArtifact.io``.

    Returns:
        Paths of the files written, in archive order.

    Raises:
        ExtractFailure: If the archive is malformed or unsafe, or if any
            filesystem operation fails.  The original exception is chained.
        FetchFailure: If the underlying download breaks while being read.
    """

    cfg = config or DownloadConfiguration()
    log = logger or LOGGER
    destination = Path(destination_dir)
    limit = cfg.max_uncompressed_bytes()
    staging: Optional[Path] = None
    try:
        spool, received = _spool(artifact, cfg.spool_max_bytes())
        with spool:
            destination.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=destination))
            if zipfile.is_zipfile(spool):  # type: ignore[arg-type]
                spool.seek(0)
                archive_type = "zip"
                relative_paths = _extract_zip(spool, staging, limit)  # type: ignore[arg-type]
            else:
                spool.seek(0)
                archive_type = "tar"
                relative_paths = _extract_tar(spool, staging, limit)  # type: ignore[arg-type]
        extracted = _promote(staging, destination, relative_paths)
    except (ConfigError, OSError, EOFError, zlib.error, zipfile.BadZipFile, tarfile.TarError) as exc:
        log.error(
            "artifact extraction failed",
            extra={"stage": "extract", "extra_fields": {"destination": str(destination)}},
        )
        raise ExtractFailure(
            f"Failed to extract artifact into {destination}: {exc}", destination=str(destination)
        ) from exc
    finally:
        if staging is not None:
            shutil.rmtree(staging, ignore_errors=True)

    log.info(
        "extracted artifact archive",
        extra={
            "stage": "extract",
            "extra_fields": {
                "destination": str(destination),
                "archive_type": archive_type,
                "bytes": received,
                "files": len(extracted),
            },
        },
    )
    return extracted
