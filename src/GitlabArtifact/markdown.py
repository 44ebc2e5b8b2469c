"""Markdown loading via ``markdown-it-py`` into the package's document tree."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from .document import Document, Node, Point, Position

__all__ = ["parse_markdown", "read_document"]

# markdown-it node names that differ from their mdast counterparts.
_MDAST_TYPES = {
    "bullet_list": "list",
    "ordered_list": "list",
    "list_item": "listItem",
    "em": "emphasis",
    "code_inline": "inlineCode",
    "fence": "code",
    "code_block": "code",
    "hr": "thematicBreak",
    "hardbreak": "break",
    "html_block": "html",
    "html_inline": "html",
}


def _position(line_map: Optional[Tuple[int, int]]) -> Optional[Position]:
    if not line_map:
        return None
    start, end = line_map
    return Position(start=Point(line=start + 1, column=1), end=Point(line=max(end, start + 1), column=1))


def _convert(source: SyntaxTreeNode, inherited: Optional[Position]) -> Node:
    if source.is_root:
        root = Node(type="root")
        for child in source.children:
            root.children.append(_convert(child, None))
        return root
    position = _position(source.map) or inherited
    if source.type == "softbreak":
        # mdast has no soft break node; the line ending stays in the text.
        return Node(type="text", value="\n", position=position)
    node = Node(type=_MDAST_TYPES.get(source.type, source.type), position=position)
    attrs = source.attrs
    if source.type == "link":
        node.url = str(attrs.get("href", ""))
        title = attrs.get("title")
        node.title = str(title) if title is not None else None
    elif source.type == "image":
        node.url = str(attrs.get("src", ""))
        title = attrs.get("title")
        node.title = str(title) if title is not None else None
        node.attributes["alt"] = source.content
        return node
    elif source.type in {"text", "code_inline", "fence", "code_block", "html_block", "html_inline"}:
        node.value = source.content
    elif source.type == "heading":
        node.attributes["depth"] = int(source.tag[1:])
    elif source.type in {"bullet_list", "ordered_list"}:
        node.attributes["ordered"] = source.type == "ordered_list"
    if source.type == "fence" and source.info:
        node.attributes["lang"] = source.info.strip()
    for child in source.children:
        if child.type == "inline":
            # Inline containers have no mdast counterpart; hoist their children.
            inline_position = _position(child.map) or position
            node.children.extend(_convert(grand, inline_position) for grand in child.children)
        else:
            node.children.append(_convert(child, position))
    return node


def parse_markdown(text: str) -> Node:
    """Parse CommonMark ``text`` into a :class:`Node` tree rooted at ``root``."""

    tokens = MarkdownIt("commonmark").parse(text)
    return _convert(SyntaxTreeNode(tokens), None)


def read_document(
    path: Path, *, data: Optional[Mapping[str, Any]] = None, encoding: str = "utf-8"
) -> Tuple[Node, Document]:
    """Read ``path`` and return its parsed tree together with a fresh :class:`Document`."""

    contents = Path(path).read_text(encoding=encoding)
    document = Document(path, contents=contents, data=dict(data or {}))
    return parse_markdown(contents), document
