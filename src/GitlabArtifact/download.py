# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.download",
#   "purpose": "Build GitLab job artifact URLs and open authenticated streaming downloads",
#   "sections": [
#     {"id": "constants", "name": "Endpoint Constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "stream", "name": "ArtifactStream", "anchor": "STR", "kind": "class"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Authenticated retrieval of job artifact archives from the GitLab API.

Only the latest successful pipeline on the ``master`` ref is consulted; the
ref is fixed by the endpoint contract and not configurable.

See https://docs.gitlab.com/ee/api/job_artifacts.html#download-the-artifacts-archive
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Iterator, Optional, Type
from urllib.parse import quote, urlencode

import httpx

from .errors import FetchFailure
from .net import get_http_client
from .settings import DownloadConfiguration

__all__ = [
    "API_VERSION",
    "ARTIFACT_REF",
    "TOKEN_HEADER",
    "ArtifactStream",
    "build_artifact_url",
    "fetch_artifact",
]

LOGGER = logging.getLogger("GitlabArtifact.download")

# --- Endpoint Constants --------------------------------------------------------

API_VERSION = "v4"
ARTIFACT_REF = "master"
TOKEN_HEADER = "PRIVATE-TOKEN"
_CHUNK_SIZE = 1 << 16


# --- ArtifactStream ------------------------------------------------------------


class ArtifactStream:
    """Single-use byte stream over a successful artifact download response."""

    def __init__(self, response: httpx.Response, url: str) -> None:
        self._response = response
        self.url = url
        self._consumed = False
        self._closed = False

    @property
    def content_length(self) -> Optional[int]:
        value = self._response.headers.get("Content-Length")
        if value is None or not value.isdigit():
            return None
        return int(value)

    def iter_bytes(self, chunk_size: int = _CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the response body in chunks; the stream may be read only once."""

        if self._consumed:
            raise RuntimeError(f"artifact stream from {self.url} was already consumed")
        self._consumed = True
        try:
            for chunk in self._response.iter_bytes(chunk_size):
                yield chunk
        except httpx.HTTPError as exc:
            raise FetchFailure(
                f"{type(exc).__name__} while reading {self.url}: {exc}", url=self.url
            ) from exc
        finally:
            self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._response.close()

    def __enter__(self) -> "ArtifactStream":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


# --- Public API ----------------------------------------------------------------


def build_artifact_url(api_base: str, project_id: str, job_name: str) -> str:
    """Return the artifact download URL for ``job_name`` in ``project_id``.

    Path-qualified project ids (``group/project``) are percent-encoded as the
    GitLab API requires; numeric ids pass through unchanged.

    Examples:
        >>> build_artifact_url("https://gitlab.example.com/", "1095", "docs")
        'https://gitlab.example.com/api/v4/projects/1095/jobs/artifacts/master/download?job=docs'
    """

    base = api_base.rstrip("/")
    project = quote(str(project_id), safe="")
    query = urlencode({"job": job_name})
    return f"{base}/api/{API_VERSION}/projects/{project}/jobs/artifacts/{ARTIFACT_REF}/download?{query}"


def fetch_artifact(
    api_base: str,
    token: str,
    project_id: str,
    job_name: str,
    *,
    client: Optional[httpx.Client] = None,
    config: Optional[DownloadConfiguration] = None,
) -> ArtifactStream:
    """Open a streaming download of the artifact archive for one job.

    Args:
        api_base: Root URL of the GitLab instance, e.g. ``https://gitlab.com``.
        token: Private token sent in the ``PRIVATE-TOKEN`` header.
        project_id: Numeric or path-qualified project identifier.
        job_name: Name of the CI job whose artifacts are requested.
        client: Optional HTTPX client; the shared client is used otherwise.
        config: Download configuration used when building the shared client.

    Returns:
        :class:`ArtifactStream` that must be consumed exactly once.

    Raises:
        FetchFailure: If the request fails or the response status is not 200.
    """

    url = build_artifact_url(api_base, project_id, job_name)
    http = client or get_http_client(config)
    request = http.build_request("GET", url, headers={TOKEN_HEADER: token})
    try:
        response = http.send(request, stream=True)
    except httpx.HTTPError as exc:
        raise FetchFailure(f"{type(exc).__name__} from {url}: {exc}", url=url) from exc

    if response.status_code != 200:
        status_code = response.status_code
        reason = response.reason_phrase or f"HTTP {status_code}"
        response.close()
        LOGGER.warning(
            "artifact download rejected",
            extra={
                "stage": "fetch",
                "project_id": project_id,
                "job_name": job_name,
                "extra_fields": {"status": status_code, "url": url},
            },
        )
        raise FetchFailure(f"{reason} from {url}.", url=url, status_code=status_code)

    LOGGER.info(
        "artifact download started",
        extra={"stage": "fetch", "project_id": project_id, "job_name": job_name},
    )
    return ArtifactStream(response, url)
