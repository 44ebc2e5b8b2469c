"""Reference parsing and link scanning."""

from __future__ import annotations

import pytest

from GitlabArtifact.document import Node
from GitlabArtifact.scanner import ArtifactReference, parse_reference, scan_links


def _link(title, url="docs/index.html"):
    return Node(type="link", url=url, title=title, children=[Node(type="text", value="docs")])


@pytest.mark.parametrize(
    "title, expected",
    [
        ("gitlab-artifact|1095|build:docs", ArtifactReference("1095", "build:docs")),
        ("gitlab-artifact|group/docs|pages", ArtifactReference("group/docs", "pages")),
        ("See gitlab-artifact|42|docs", ArtifactReference("42", "docs")),
        ("gitlab-artifact| 7 | lint |extra", ArtifactReference("7", "lint")),
    ],
)
def test_parse_reference_accepts_marker_titles(title, expected):
    assert parse_reference(title) == expected


@pytest.mark.parametrize(
    "title",
    [None, "", "Plain title", "gitlab-artifact|onlyOneField", "gitlab-artifact||docs", "gitlab-artifact|1095|"],
)
def test_parse_reference_treats_malformed_titles_as_no_match(title):
    assert parse_reference(title) is None


def test_scan_links_preserves_document_order():
    first = _link("gitlab-artifact|1|first")
    nested = _link("gitlab-artifact|2|nested")
    last = _link("gitlab-artifact|3|last")
    tree = Node(
        type="root",
        children=[
            Node(type="paragraph", children=[first]),
            Node(
                type="list",
                children=[Node(type="listItem", children=[Node(type="paragraph", children=[nested])])],
            ),
            Node(type="paragraph", children=[_link("not a reference"), _link(None), last]),
        ],
    )

    matches = scan_links(tree)

    assert [match.node for match in matches] == [first, nested, last]
    assert [match.reference.job_name for match in matches] == ["first", "nested", "last"]


def test_scan_links_ignores_non_link_nodes_with_titles():
    image = Node(type="image", url="logo.png", title="gitlab-artifact|1|docs")
    tree = Node(type="root", children=[Node(type="paragraph", children=[image])])

    assert scan_links(tree) == []


def test_scan_links_on_empty_tree():
    assert scan_links(Node(type="root")) == []
