"""Detect link nodes whose title references a GitLab CI artifact.

A reference has the form ``gitlab-artifact|<project_id>|<job_name>`` and
lives in a link's title attribute, e.g.::

    [API docs](docs/index.html "gitlab-artifact|1095|build:docs")

Titles that do not contain the marker, or that lack either trailing field,
are not references; scanning never raises for them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .document import Node, visit

__all__ = ["MARKER", "ArtifactReference", "LinkMatch", "parse_reference", "scan_links"]

MARKER = "gitlab-artifact|"
DELIMITER = "|"

LOGGER = logging.getLogger("GitlabArtifact.scanner")


@dataclass(frozen=True)
class ArtifactReference:
    """Project and job that identify one artifact archive."""

    project_id: str
    job_name: str


@dataclass(frozen=True)
class LinkMatch:
    """A link node paired with the reference parsed from its title."""

    node: Node
    reference: ArtifactReference


def parse_reference(title: Optional[str]) -> Optional[ArtifactReference]:
    """Return the reference encoded in ``title`` or ``None`` when there is none."""

    if not title:
        return None
    index = title.find(MARKER)
    if index == -1:
        return None
    segments = title[index + len(MARKER):].split(DELIMITER)
    if len(segments) < 2:
        return None
    project_id, job_name = segments[0].strip(), segments[1].strip()
    if not project_id or not job_name:
        return None
    return ArtifactReference(project_id=project_id, job_name=job_name)


def scan_links(tree: Node) -> List[LinkMatch]:
    """Collect link nodes carrying an artifact reference, in document order."""

    matches: List[LinkMatch] = []
    for node in visit(tree, "link"):
        reference = parse_reference(node.title)
        if reference is None:
            continue
        matches.append(LinkMatch(node=node, reference=reference))
    LOGGER.debug("scanned document for artifact links", extra={"stage": "scan", "matches": len(matches)})
    return matches
