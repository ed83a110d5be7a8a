"""Diagnostic checks on a content tree.

Nothing here raises: the partition comes from a probabilistic generation step,
so coverage gaps and overlaps are reported and the pipeline carries on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..models import (
    ContentNode,
    ContentTree,
    EscapedChild,
    PageOverlap,
    PartitionReport,
    UnassignedPages,
)

logger = logging.getLogger(__name__)


def _sibling_overlaps(
    siblings: Sequence[ContentNode],
    parent_id: str | None,
) -> list[PageOverlap]:
    """Every sibling pair sharing at least one page, in tree order."""
    covered = [node.transitive_pages() for node in siblings]
    overlaps: list[PageOverlap] = []
    for i, first in enumerate(siblings):
        for j in range(i + 1, len(siblings)):
            shared = covered[i] & covered[j]
            if shared:
                overlaps.append(PageOverlap(
                    parent_id=parent_id,
                    first_node_id=first.id,
                    second_node_id=siblings[j].id,
                    pages=sorted(shared),
                ))
    return overlaps


def _check_children(node: ContentNode, report: PartitionReport) -> None:
    if not node.children:
        return
    report.overlaps.extend(_sibling_overlaps(node.children, node.id))
    if node.pages:
        # Own pages must be split among the children; leftovers reach no leaf.
        claimed_by_children: set[int] = set()
        for child in node.children:
            claimed_by_children |= child.transitive_pages()
        unassigned = node.pages - claimed_by_children
        if unassigned:
            report.unassigned_parent_pages.append(UnassignedPages(
                parent_id=node.id, pages=sorted(unassigned),
            ))
    for child in node.children:
        if node.pages:
            escaped = child.transitive_pages() - node.pages
            if escaped:
                report.escaped_children.append(EscapedChild(
                    parent_id=node.id, child_id=child.id, pages=sorted(escaped),
                ))
        _check_children(child, report)


def validate_partition(tree: ContentTree, universe: Iterable[int]) -> PartitionReport:
    """Check *tree* against the content-bearing page numbers in *universe*."""
    universe_set = set(universe)
    report = PartitionReport()

    claimed: set[int] = set()
    for node in tree.nodes:
        claimed |= node.transitive_pages()

    report.uncovered = sorted(universe_set - claimed)
    report.unknown_pages = sorted(claimed - universe_set)
    report.overlaps.extend(_sibling_overlaps(tree.nodes, None))
    for node in tree.nodes:
        _check_children(node, report)

    if report.ok:
        logger.info("Partition covers all %d pages with no overlaps", len(universe_set))
    else:
        for line in report.messages():
            logger.warning(line)
    return report
