"""Fetch GitLab CI job artifacts referenced from Markdown links.

Links whose title reads ``gitlab-artifact|<project_id>|<job_name>`` are
resolved against the GitLab jobs API, and the artifact archive is unpacked
next to the document so relative link targets exist after publishing::

    from GitlabArtifact import Document, gitlab_artifact, parse_markdown

    tree = parse_markdown(text)
    document = Document("docs/index.md", data={"destinationDir": "site/docs"})
    gitlab_artifact({"apiBase": "https://gitlab.example.com", "gitlabApiToken": token})(tree, document)
    for entry in document.messages:
        print(entry)
"""

from __future__ import annotations

from .document import DiagnosticMessage, DiagnosticReport, Document, Node, Point, Position, visit
from .download import ARTIFACT_REF, ArtifactStream, build_artifact_url, fetch_artifact
from .errors import (
    ConfigError,
    ExtractFailure,
    FetchFailure,
    GitlabArtifactError,
    OrchestrationError,
    UserConfigError,
)
from .io import extract_artifact
from .markdown import parse_markdown, read_document
from .scanner import MARKER, ArtifactReference, LinkMatch, parse_reference, scan_links
from .settings import (
    DownloadConfiguration,
    GitlabArtifactSettings,
    LoggingConfiguration,
    get_default_settings,
    load_settings,
)
from .transformer import (
    PLUGIN_NAME,
    GitlabArtifactTransformer,
    LinkOutcome,
    gitlab_artifact,
    process_document,
    resolve_destination_dir,
)

__version__ = "0.1.2"

__all__ = [
    "ARTIFACT_REF",
    "MARKER",
    "PLUGIN_NAME",
    "ArtifactReference",
    "ArtifactStream",
    "ConfigError",
    "DiagnosticMessage",
    "DiagnosticReport",
    "Document",
    "DownloadConfiguration",
    "ExtractFailure",
    "FetchFailure",
    "GitlabArtifactError",
    "GitlabArtifactSettings",
    "GitlabArtifactTransformer",
    "LinkMatch",
    "LinkOutcome",
    "LoggingConfiguration",
    "Node",
    "OrchestrationError",
    "Point",
    "Position",
    "UserConfigError",
    "build_artifact_url",
    "extract_artifact",
    "fetch_artifact",
    "get_default_settings",
    "gitlab_artifact",
    "load_settings",
    "parse_markdown",
    "parse_reference",
    "process_document",
    "read_document",
    "resolve_destination_dir",
    "scan_links",
    "visit",
    "__version__",
]
