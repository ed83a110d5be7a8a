"""Tests for tools/document_assembler.py."""

from __future__ import annotations

from study_notes_generator.models import ContentNode, ContentTree, SectionResult, SynthesisLevel
from study_notes_generator.tools.document_assembler import (
    DEFAULT_TITLE,
    assemble_document,
    merge_main_content,
    mermaid_block,
)


def result(node_id: str, **extra) -> SectionResult:
    return SectionResult(node_id=node_id, main_text=f"## Section {node_id}\n\nText {node_id}.", **extra)


def two_section_tree(diagram: str = "flowchart LR\n  A --> B") -> ContentTree:
    return ContentTree(
        title="Genetics",
        summary="Inheritance and DNA.",
        nodes=(
            ContentNode(id="1", title="Mendel", pages=frozenset({1, 2})),
            ContentNode(id="2", title="DNA", pages=frozenset({3})),
        ),
        relationship_diagram=diagram,
    )


def test_mermaid_block():
    assert mermaid_block("flowchart LR\n  A --> B") == "```mermaid\nflowchart LR\n  A --> B\n```"


class TestAssembleDocument:
    def test_tree_order_regardless_of_result_order(self):
        results = {"2": result("2"), "1": result("1")}
        doc = assemble_document(two_section_tree(), results)
        assert doc.index("Text 1.") < doc.index("Text 2.")

    def test_layout(self):
        results = {
            "1": result("1", review_questions="Q1", glossary="G1", pitfalls="P1"),
            "2": result("2", review_questions="Q2", glossary="", pitfalls="P2"),
        }
        doc = assemble_document(two_section_tree(), results)
        assert doc == (
            "# Genetics\n\n"
            "Inheritance and DNA.\n\n"
            "## Concept Map\n\n"
            "```mermaid\nflowchart LR\n  A --> B\n```\n\n"
            "## Section 1\n\nText 1.\n\n"
            "## Section 2\n\nText 2.\n\n"
            "## Review Questions\n\nQ1\n\nQ2\n\n"
            "## Glossary\n\nG1\n\n"
            "## Common Pitfalls\n\nP1\n\nP2\n"
        )

    def test_empty_appendices_omitted(self):
        doc = assemble_document(two_section_tree(), {"1": result("1"), "2": result("2")})
        assert "## Review Questions" not in doc
        assert "## Glossary" not in doc
        assert "## Common Pitfalls" not in doc

    def test_empty_diagram_omits_concept_map(self):
        doc = assemble_document(two_section_tree(diagram="  "), {"1": result("1")})
        assert "Concept Map" not in doc
        assert "```mermaid" not in doc

    def test_padded_diagram_trimmed_once(self):
        doc = assemble_document(
            two_section_tree(diagram="\n  flowchart LR\n  A --> B\n\n"), {"1": result("1")},
        )
        assert "```mermaid\nflowchart LR\n  A --> B\n```" in doc

    def test_missing_result_is_skipped(self):
        doc = assemble_document(two_section_tree(), {"2": result("2", glossary="G2")})
        assert "Text 1." not in doc
        assert "Text 2." in doc
        assert "G2" in doc

    def test_default_title(self):
        t = ContentTree(nodes=(ContentNode(id="1", title="A"),))
        assert assemble_document(t, {}).startswith(f"# {DEFAULT_TITLE}\n")

    def test_deterministic(self):
        results = {"1": result("1", glossary="G"), "2": result("2")}
        assert assemble_document(two_section_tree(), results) == assemble_document(
            two_section_tree(), dict(reversed(results.items())),
        )


class TestLeafLevel:
    def _tree(self) -> ContentTree:
        return ContentTree(
            title="T",
            nodes=(
                ContentNode(id="1", title="Cells", children=(
                    ContentNode(id="1.1", title="Membrane", pages=frozenset({1})),
                    ContentNode(id="1.2", title="Nucleus", pages=frozenset({2})),
                )),
                ContentNode(id="2", title="Tissues", pages=frozenset({3})),
            ),
        )

    def test_ancestor_headings_emitted(self):
        results = {nid: result(nid) for nid in ("1.1", "1.2", "2")}
        blocks, ordered = merge_main_content(self._tree(), results, SynthesisLevel.LEAF)
        assert blocks[0] == "## Cells"
        assert [r.node_id for r in ordered] == ["1.1", "1.2", "2"]

    def test_top_level_ignores_leaf_results(self):
        results = {"1.1": result("1.1"), "2": result("2")}
        blocks, ordered = merge_main_content(self._tree(), results, SynthesisLevel.TOP)
        assert [r.node_id for r in ordered] == ["2"]
        assert "## Cells" not in blocks
