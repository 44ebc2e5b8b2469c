# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.document",
#   "purpose": "Minimal mdast-shaped document tree, vfile-like document, and append-only diagnostic report",
#   "sections": [
#     {"id": "positions", "name": "Source Positions", "anchor": "POS", "kind": "api"},
#     {"id": "nodes", "name": "Tree Nodes", "anchor": "NOD", "kind": "api"},
#     {"id": "diagnostics", "name": "Diagnostic Report", "anchor": "DIA", "kind": "api"},
#     {"id": "document", "name": "Document", "anchor": "DOC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Document tree and diagnostic report exchanged with the host pipeline.

The host pipeline parses Markdown into an mdast-style tree and carries a
document object alongside it holding the source path, free-form metadata,
and the list of messages produced by each processing stage.  These classes
mirror that contract closely enough to convert to and from remark JSON.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Mapping, MutableMapping, Optional, Tuple, Union

__all__ = [
    "Point",
    "Position",
    "Node",
    "visit",
    "DiagnosticMessage",
    "DiagnosticReport",
    "Document",
]

DiagnosticKind = Literal["info", "error"]


# --- Source Positions ----------------------------------------------------------


@dataclass(frozen=True)
class Point:
    """One place in a source file (1-indexed line and column)."""

    line: int
    column: int
    offset: Optional[int] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Point":
        return cls(
            line=int(payload.get("line", 1)),
            column=int(payload.get("column", 1)),
            offset=payload.get("offset"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"line": self.line, "column": self.column}
        if self.offset is not None:
            data["offset"] = self.offset
        return data


@dataclass(frozen=True)
class Position:
    """Source span used to attribute diagnostics to a node."""

    start: Point
    end: Point

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Position":
        return cls(
            start=Point.from_dict(payload.get("start", {})),
            end=Point.from_dict(payload.get("end", payload.get("start", {}))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    def __str__(self) -> str:
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


# --- Tree Nodes ----------------------------------------------------------------

_KNOWN_KEYS = {"type", "children", "title", "url", "value", "position", "data"}


@dataclass(eq=False)
class Node:
    """A node in the parsed document tree.

    Link nodes carry ``url`` and ``title``; text nodes carry ``value``.  Other
    mdast properties (``depth``, ``ordered``, ``lang`` ...) are kept in
    ``attributes`` so that a round trip through :meth:`from_dict` /
    :meth:`to_dict` is lossless.
    """

    type: str
    children: List["Node"] = field(default_factory=list)
    title: Optional[str] = None
    url: Optional[str] = None
    value: Optional[str] = None
    position: Optional[Position] = None
    data: Dict[str, Any] = field(default_factory=dict)
    attributes: Dict[str, Any] = field(default_factory=dict)

    def walk(self) -> Iterator["Node"]:
        """Yield this node and its descendants in depth-first pre-order."""

        stack: List[Node] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Node":
        """Build a tree from remark/mdast JSON."""

        position = payload.get("position")
        attributes = {key: value for key, value in payload.items() if key not in _KNOWN_KEYS}
        return cls(
            type=str(payload["type"]),
            children=[cls.from_dict(child) for child in payload.get("children", [])],
            title=payload.get("title"),
            url=payload.get("url"),
            value=payload.get("value"),
            position=Position.from_dict(position) if position else None,
            data=dict(payload.get("data") or {}),
            attributes=attributes,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the tree back into remark/mdast JSON."""

        payload: Dict[str, Any] = dict(self.attributes)
        payload["type"] = self.type
        if self.url is not None:
            payload["url"] = self.url
        if self.title is not None:
            payload["title"] = self.title
        if self.value is not None:
            payload["value"] = self.value
        if self.children:
            payload["children"] = [child.to_dict() for child in self.children]
        if self.position is not None:
            payload["position"] = self.position.to_dict()
        if self.data:
            payload["data"] = dict(self.data)
        return payload


def visit(tree: Node, node_type: Optional[str] = None) -> Iterator[Node]:
    """Yield nodes of ``node_type`` (or every node) in document order."""

    for node in tree.walk():
        if node_type is None or node.type == node_type:
            yield node


# --- Diagnostic Report ---------------------------------------------------------


@dataclass(frozen=True)
class DiagnosticMessage:
    """A single informational or error entry attached to a document."""

    kind: DiagnosticKind
    message: str
    position: Optional[Position] = None
    source: Optional[str] = None
    rule_id: Optional[str] = None
    file: Optional[str] = None

    @property
    def fatal(self) -> bool:
        return self.kind == "error"

    def __str__(self) -> str:
        location = str(self.position) if self.position is not None else "1:1"
        prefix = f"{self.file}:{location}" if self.file else location
        return f"{prefix}: {self.message}"


class DiagnosticReport:
    """Append-only, thread-safe collection of diagnostic messages."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: List[DiagnosticMessage] = []

    def append(self, entry: DiagnosticMessage) -> DiagnosticMessage:
        with self._lock:
            self._entries.append(entry)
        return entry

    def snapshot(self) -> Tuple[DiagnosticMessage, ...]:
        """Return an immutable copy of the entries recorded so far."""

        with self._lock:
            return tuple(self._entries)

    def infos(self) -> List[DiagnosticMessage]:
        return [entry for entry in self.snapshot() if entry.kind == "info"]

    def errors(self) -> List[DiagnosticMessage]:
        return [entry for entry in self.snapshot() if entry.kind == "error"]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[DiagnosticMessage]:
        return iter(self.snapshot())

    def __getitem__(self, index: int) -> DiagnosticMessage:
        with self._lock:
            return self._entries[index]


# --- Document ------------------------------------------------------------------


class Document:
    """Per-document state carried alongside the tree (the host's ``vfile``).

    Attributes:
        path: Source location of the document, when it came from disk.
        data: Metadata supplied by the host pipeline; ``destinationDir``
            overrides where artifacts are written.
        messages: Append-only diagnostic report.
    """

    def __init__(
        self,
        path: Optional[Union[str, "os.PathLike[str]"]] = None,
        *,
        contents: str = "",
        data: Optional[MutableMapping[str, Any]] = None,
    ) -> None:
        self.path: Optional[Path] = Path(path) if path is not None else None
        self.contents = contents
        self.data: MutableMapping[str, Any] = dict(data or {})
        self.messages = DiagnosticReport()

    @property
    def dirname(self) -> Optional[Path]:
        """Directory of the source file, or ``None`` for in-memory documents."""

        if self.path is None:
            return None
        return self.path.parent

    def info(
        self,
        message: str,
        position: Optional[Position] = None,
        source: Optional[str] = None,
    ) -> DiagnosticMessage:
        """Record an informational entry."""

        return self._record("info", message, position, source)

    def message(
        self,
        reason: object,
        position: Optional[Position] = None,
        source: Optional[str] = None,
    ) -> DiagnosticMessage:
        """Record an error entry; exceptions contribute their message text."""

        return self._record("error", str(reason), position, source)

    def _record(
        self,
        kind: DiagnosticKind,
        message: str,
        position: Optional[Position],
        source: Optional[str],
    ) -> DiagnosticMessage:
        rule_id = None
        if source and ":" in source:
            source, rule_id = source.split(":", 1)
        entry = DiagnosticMessage(
            kind=kind,
            message=message,
            position=position,
            source=source,
            rule_id=rule_id,
            file=str(self.path) if self.path is not None else None,
        )
        return self.messages.append(entry)

    def __repr__(self) -> str:
        return f"Document(path={self.path!r}, messages={len(self.messages)})"
