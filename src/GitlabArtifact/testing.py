"""Testing utilities for exercising the artifact transformer without a network.

Provides a context manager that installs an ``httpx.MockTransport``-backed
client as the shared client, and builders for in-memory archives.
"""

from __future__ import annotations

import contextlib
import io
import tarfile
import zipfile
from typing import Callable, Iterator, Mapping, Optional, Union

import httpx

from .net import configure_http_client, reset_http_client
from .settings import DownloadConfiguration

__all__ = ["use_mock_http_client", "build_zip_archive", "build_tar_archive"]

Handler = Callable[[httpx.Request], httpx.Response]


@contextlib.contextmanager
def use_mock_http_client(
    transport: Union[httpx.BaseTransport, Handler],
    *,
    default_config: Optional[DownloadConfiguration] = None,
    **client_kwargs,
) -> Iterator[httpx.Client]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    if not isinstance(transport, httpx.BaseTransport):
        transport = httpx.MockTransport(transport)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_config=default_config)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


def build_zip_archive(files: Mapping[str, Union[str, bytes]]) -> bytes:
    """Return ZIP bytes containing ``files`` (``name -> content``); names ending in ``/`` become directories."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            if name.endswith("/"):
                archive.writestr(zipfile.ZipInfo(name), b"")
                continue
            archive.writestr(name, content.encode("utf-8") if isinstance(content, str) else content)
    return buffer.getvalue()


def build_tar_archive(files: Mapping[str, Union[str, bytes]], *, compression: str = "gz") -> bytes:
    """Return tar bytes (``compression`` ``""``, ``"gz"``, ``"bz2"`` or ``"xz"``) containing ``files``."""

    buffer = io.BytesIO()
    mode = f"w:{compression}" if compression else "w"
    with tarfile.open(fileobj=buffer, mode=mode) as archive:
        for name, content in files.items():
            payload = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            archive.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()
