# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.errors",
#   "purpose": "Define the exception hierarchy used across artifact scanning, fetching, and extraction",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "configuration", "name": "Configuration Errors", "anchor": "CFG", "kind": "api"},
#     {"id": "fetch", "name": "Fetch & Extract Errors", "anchor": "FET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across artifact fetching, extraction, and orchestration.

Artifact processing spans reference parsing, an authenticated HTTP retrieval,
and archive materialisation next to the document.  Failures in the last two
stages are scoped to a single link and surface as diagnostic entries, so the
classes below carry enough context (status code, URL, underlying cause) to
render a useful message without re-raising.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GitlabArtifactError",
    "FetchFailure",
    "ExtractFailure",
    "OrchestrationError",
    "UserConfigError",
    "ConfigError",
]


class GitlabArtifactError(RuntimeError):
    """Base exception for artifact fetch, extraction, and orchestration failures."""


class FetchFailure(GitlabArtifactError):
    """Raised when the artifact download request does not return HTTP 200."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ExtractFailure(GitlabArtifactError):
    """Raised when an artifact archive cannot be unpacked into its destination."""

    def __init__(self, message: str, *, destination: Optional[str] = None) -> None:
        super().__init__(message)
        self.destination = destination


class OrchestrationError(GitlabArtifactError):
    """Raised for unexpected faults while scanning or dispatching link tasks."""


class UserConfigError(GitlabArtifactError):
    """Raised when plugin options or environment configuration are invalid."""


# Alias used by the extraction helpers for path policy violations.
ConfigError = UserConfigError
