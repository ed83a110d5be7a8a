"""Deterministic merge of per-section results into one markdown document.

Document order is decided here and only here: it is always content-tree
order, never the order in which concurrent synthesis requests finished.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..models import ContentTree, SectionResult, SynthesisLevel

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Study Notes"

_APPENDICES = (
    ("Review Questions", "review_questions"),
    ("Glossary", "glossary"),
    ("Common Pitfalls", "pitfalls"),
)


def mermaid_block(diagram: str) -> str:
    return f"```mermaid\n{diagram}\n```"


def _heading(depth: int, title: str) -> str:
    # Top-level nodes sit under the document title at '##'.
    return f"{'#' * min(depth + 2, 6)} {title}"


def merge_main_content(
    tree: ContentTree,
    results: Mapping[str, SectionResult],
    level: SynthesisLevel,
) -> tuple[list[str], list[SectionResult]]:
    """Walk the tree depth-first and collect main-text blocks in order.

    Returns the blocks and the section results that contributed, in the same
    order. Targets without a result are skipped.
    """
    target_ids = {node.id for node in tree.synthesis_targets(level)}
    blocks: list[str] = []
    ordered: list[SectionResult] = []
    for depth, node in tree.walk():
        if node.id in target_ids:
            result = results.get(node.id)
            if result is None:
                logger.debug("No section result for node %s, skipping", node.id)
                continue
            blocks.append(result.main_text.strip())
            ordered.append(result)
        elif level == SynthesisLevel.LEAF:
            blocks.append(_heading(depth, node.title))
    return blocks, ordered


def assemble_document(
    tree: ContentTree,
    results: Mapping[str, SectionResult],
    level: SynthesisLevel = SynthesisLevel.TOP,
) -> str:
    """Build the final markdown document.

    Order: title and summary, concept map, merged main content, then the
    review questions, glossary and pitfalls appendices when nonempty.
    """
    parts: list[str] = [f"# {tree.title.strip() or DEFAULT_TITLE}"]
    if tree.summary.strip():
        parts.append(tree.summary.strip())
    diagram = tree.relationship_diagram.strip()
    if diagram:
        parts.append("## Concept Map")
        parts.append(mermaid_block(diagram))

    blocks, ordered = merge_main_content(tree, results, level)
    parts.extend(b for b in blocks if b)

    for heading, field in _APPENDICES:
        body = "\n\n".join(
            text for text in (getattr(r, field).strip() for r in ordered) if text
        )
        if body:
            parts.append(f"## {heading}")
            parts.append(body)

    return "\n\n".join(parts) + "\n"
