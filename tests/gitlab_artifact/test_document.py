"""Document tree conversion and the append-only diagnostic report."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from GitlabArtifact.document import DiagnosticMessage, DiagnosticReport, Document, Node, Position, visit

MDAST = {
    "type": "root",
    "children": [
        {
            "type": "paragraph",
            "children": [
                {
                    "type": "link",
                    "url": "docs/index.html",
                    "title": "gitlab-artifact|1095|build:docs",
                    "children": [{"type": "text", "value": "API documentation"}],
                    "position": {
                        "start": {"line": 1, "column": 1, "offset": 0},
                        "end": {"line": 1, "column": 70, "offset": 69},
                    },
                }
            ],
        },
        {"type": "heading", "depth": 2, "children": [{"type": "text", "value": "Changes"}]},
    ],
}


def test_mdast_round_trip_is_lossless():
    tree = Node.from_dict(MDAST)

    assert tree.to_dict() == MDAST


def test_unknown_mdast_keys_live_in_attributes():
    heading = Node.from_dict(MDAST).children[1]

    assert heading.attributes == {"depth": 2}
    assert heading.data == {}


def test_visit_filters_by_type_in_document_order():
    tree = Node.from_dict(MDAST)

    assert [node.type for node in visit(tree)] == ["root", "paragraph", "link", "text", "heading", "text"]
    assert [node.value for node in visit(tree, "text")] == ["API documentation", "Changes"]


def test_position_rendering():
    link = next(visit(Node.from_dict(MDAST), "link"))

    assert isinstance(link.position, Position)
    assert str(link.position) == "1:1-1:70"


def test_document_records_info_and_errors(tmp_path):
    document = Document(tmp_path / "guide.md")
    position = Node.from_dict(MDAST).children[0].children[0].position

    info = document.info("artifacts fetched from 1 docs", position, "remark-gitlab-artifact")
    error = document.message(ValueError("Not Found from https://x."), position, "remark-gitlab-artifact")

    assert document.dirname == tmp_path
    assert [entry.kind for entry in document.messages] == ["info", "error"]
    assert document.messages.infos() == [info]
    assert document.messages.errors() == [error]
    assert error.message == "Not Found from https://x."
    assert error.fatal and not info.fatal
    assert str(error).endswith("guide.md:1:1-1:70: Not Found from https://x.")


def test_source_with_rule_id_is_split():
    entry = Document().info("hello", source="remark-gitlab-artifact:fetch")

    assert entry.source == "remark-gitlab-artifact"
    assert entry.rule_id == "fetch"


def test_in_memory_documents_have_no_directory():
    assert Document().dirname is None


def test_report_tolerates_concurrent_appends():
    report = DiagnosticReport()

    def _append(index: int) -> None:
        report.append(DiagnosticMessage(kind="info", message=str(index)))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_append, range(500)))

    assert len(report) == 500
    assert sorted(int(entry.message) for entry in report) == list(range(500))
    assert not hasattr(report, "remove") and not hasattr(report, "clear")
