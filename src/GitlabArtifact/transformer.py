# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.transformer",
#   "purpose": "Scan a document tree for artifact links, fetch and extract them concurrently, and report outcomes",
#   "sections": [
#     {"id": "destination", "name": "Destination Resolution", "anchor": "DST", "kind": "helpers"},
#     {"id": "transformer", "name": "GitlabArtifactTransformer", "anchor": "TRN", "kind": "class"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Document transformer that materialises GitLab CI artifacts next to Markdown.

If a link's title is ``gitlab-artifact|<project_id>|<job_name>``, the job's
artifact archive is downloaded and unpacked into the document's destination
directory so the link target exists once the site is built.  On success the
title is cleared so the marker does not leak into rendered output; on failure
the title is kept and an error entry is added to the document's messages.

The transformer never raises into the host pipeline.  Each link is processed
independently, and any unexpected fault during scanning or dispatch is
swallowed at the outer boundary after whatever diagnostics were already
recorded.  There is no per-link timeout beyond the HTTP client timeouts, so a
stalled extraction stalls the document.
"""

from __future__ import annotations

import logging
from concurrent import futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import httpx

from .concurrency import create_executor
from .document import Document, Node
from .download import fetch_artifact
from .errors import OrchestrationError, UserConfigError
from .io import extract_artifact
from .logging_utils import generate_correlation_id, setup_logging
from .net import get_http_client
from .scanner import LinkMatch, scan_links
from .settings import GitlabArtifactSettings, get_default_settings, load_settings

__all__ = [
    "PLUGIN_NAME",
    "LinkOutcome",
    "GitlabArtifactTransformer",
    "gitlab_artifact",
    "process_document",
    "resolve_destination_dir",
]

PLUGIN_NAME = "remark-gitlab-artifact"
DESTINATION_KEYS = ("destinationDir", "destination_dir")

LOGGER = logging.getLogger("GitlabArtifact.transformer")


# --- Destination Resolution ----------------------------------------------------


def resolve_destination_dir(document: Document) -> Optional[Path]:
    """Return where artifacts for ``document`` are written.

    An explicit ``destinationDir`` in the document metadata wins; otherwise
    the directory of the document's own source file is used.
    """

    for key in DESTINATION_KEYS:
        value = document.data.get(key)
        if value:
            return Path(value)
    return document.dirname


# --- GitlabArtifactTransformer -------------------------------------------------


@dataclass
class LinkOutcome:
    """Result of processing one matched link."""

    match: LinkMatch
    ok: bool
    files: List[Path] = field(default_factory=list)
    error: Optional[str] = None


class GitlabArtifactTransformer:
    """Callable transformer bound to one set of settings."""

    def __init__(
        self,
        settings: GitlabArtifactSettings,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self._client = client

    def __call__(self, tree: Node, document: Document) -> Node:
        """Process ``tree`` in place and return it, whatever happens."""

        try:
            self.run(tree, document)
        except Exception:
            LOGGER.debug(
                "artifact orchestration aborted",
                exc_info=True,
                extra={"stage": "orchestrate"},
            )
        return tree

    def run(self, tree: Node, document: Document) -> List[LinkOutcome]:
        """Fetch and extract every matched link, returning per-link outcomes.

        Unlike :meth:`__call__`, unexpected orchestration errors propagate.
        """

        try:
            matches = scan_links(tree)
        except Exception as exc:
            raise OrchestrationError(f"failed to scan document for artifact links: {exc}") from exc
        if not matches:
            return []

        destination = resolve_destination_dir(document)
        correlation_id = generate_correlation_id()
        workers = min(len(matches), self.settings.download.concurrent_downloads)
        LOGGER.info(
            "fetching artifacts",
            extra={
                "stage": "orchestrate",
                "correlation_id": correlation_id,
                "extra_fields": {
                    "links": len(matches),
                    "workers": workers,
                    "destination": str(destination) if destination else None,
                },
            },
        )

        executor, needs_shutdown = create_executor(workers)
        if executor is None:
            return [self._process_link(match, destination, document, correlation_id) for match in matches]
        try:
            pending = [
                executor.submit(self._process_link, match, destination, document, correlation_id)
                for match in matches
            ]
            futures.wait(pending)
            return [future.result() for future in pending]
        finally:
            if needs_shutdown:
                executor.shutdown(wait=True)

    def _http_client(self) -> httpx.Client:
        return self._client or get_http_client(self.settings.download)

    def _process_link(
        self,
        match: LinkMatch,
        destination: Optional[Path],
        document: Document,
        correlation_id: str,
    ) -> LinkOutcome:
        node, reference = match.node, match.reference
        log_extra = {
            "stage": "link",
            "correlation_id": correlation_id,
            "project_id": reference.project_id,
            "job_name": reference.job_name,
        }
        try:
            if destination is None:
                raise UserConfigError(
                    f"no destination directory for artifacts from {reference.project_id} "
                    f"{reference.job_name}; set destinationDir or give the document a path"
                )
            with fetch_artifact(
                self.settings.api_base,
                self.settings.token_value(),
                reference.project_id,
                reference.job_name,
                client=self._http_client(),
                config=self.settings.download,
            ) as artifact:
                files = extract_artifact(destination, artifact, config=self.settings.download)
        except Exception as exc:  # a failed link must not affect its siblings
            document.message(exc, node.position, PLUGIN_NAME)
            LOGGER.warning("artifact link failed: %s", exc, extra=log_extra)
            return LinkOutcome(match=match, ok=False, error=str(exc))

        node.title = ""
        document.info(
            f"artifacts fetched from {reference.project_id} {reference.job_name}",
            node.position,
            PLUGIN_NAME,
        )
        LOGGER.info("artifact link processed", extra={**log_extra, "extra_fields": {"files": len(files)}})
        return LinkOutcome(match=match, ok=True, files=files)


# --- Public API ----------------------------------------------------------------


def gitlab_artifact(
    options: Union[GitlabArtifactSettings, Mapping[str, Any], None] = None,
    *,
    client: Optional[httpx.Client] = None,
    configure_logging: bool = False,
    **overrides: Any,
) -> GitlabArtifactTransformer:
    """Return a transformer configured from ``options``.

    Args:
        options: Ready-made settings, or plugin options such as
            ``{"apiBase": ..., "gitlabApiToken": ...}``.
        client: Optional HTTPX client used instead of the shared one.
        configure_logging: Install the package's log handlers using the
            resolved logging settings.
        **overrides: Extra options layered over ``options``.

    Raises:
        UserConfigError: If the options fail validation.
    """

    if isinstance(options, GitlabArtifactSettings):
        settings = load_settings(options.model_dump(), **overrides) if overrides else options
    else:
        settings = load_settings(options, **overrides)
    if configure_logging:
        setup_logging(
            level=settings.logging.level,
            backup_count=settings.logging.backup_count,
            max_log_size_mb=settings.logging.max_log_size_mb,
            log_dir=settings.logging.log_dir,
        )
    return GitlabArtifactTransformer(settings, client=client)


def process_document(
    tree: Node,
    document: Document,
    settings: Optional[GitlabArtifactSettings] = None,
    *,
    client: Optional[httpx.Client] = None,
) -> Node:
    """Run the transformer once over ``tree`` using ``settings`` or the environment defaults."""

    transformer = GitlabArtifactTransformer(settings or get_default_settings(), client=client)
    return transformer(tree, document)
