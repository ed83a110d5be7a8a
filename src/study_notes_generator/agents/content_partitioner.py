"""ContentPartitioner: one holistic request that outlines the whole document.

The model sees page text and image filenames only and returns a JSON outline:
title, summary, sections with exact page lists (optionally split into
subsections) and a Mermaid diagram of how the sections relate.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..config import rates_for
from ..models import (
    ContentNode,
    ContentTree,
    Page,
    PartitionNodePayload,
    PartitionPayload,
    ProjectConfig,
    ServiceRequest,
    TextPart,
)
from ..tools.content_service import ContentService, request_with_timeout
from ..tools.cost_ledger import CostLedger
from .response_parsing import parse_payload

logger = logging.getLogger(__name__)

STAGE = "partition"

SYSTEM_PROMPT = """\
You are an expert at analyzing lecture structure. Given slide text only, \
identify the main topics, how they split into subtopics, and how they connect. \
Output valid JSON only.
"""

USER_PROMPT_TEMPLATE = """\
Analyze this {page_count}-slide lecture (text only below; {{{{filename}}}} marks \
an image on that slide).

1. Choose a concise title and write a 2-4 sentence summary of the lecture scope.
2. Split the content into main SECTIONS in teaching order. For each section, \
list the exact PAGE NUMBERS (from the [pN] markers) that belong to it. Every \
page should belong to exactly one section.
3. Where a section covers several distinct ideas, split it into SUBSECTIONS. \
A subsection's pages must be a subset of its section's pages, and sibling \
subsections must not share pages.
4. Create a Mermaid flowchart that shows how the sections connect (e.g. \
prerequisite order, logical flow). Use standard Mermaid syntax (flowchart LR \
or TD, nodes, arrows).

Respond with ONLY a single JSON object, no markdown or extra text:
{{
  "title": "Lecture title",
  "summary": "What the lecture covers.",
  "sections": [
    {{
      "title": "Section title",
      "pages": [1, 2, 3],
      "subsections": [
        {{"title": "Subsection title", "pages": [2, 3], "subsections": []}}
      ]
    }}
  ],
  "diagram": "flowchart LR\\n  A[Section one] --> B[Section two]"
}}

--- SLIDE TEXT ---
{listing}
"""


def content_pages(pages: Sequence[Page]) -> list[Page]:
    """Pages that carry text or at least one image."""
    return [p for p in pages if p.has_content]


def build_page_listing(pages: Sequence[Page]) -> str:
    """One ``[pN] text {{image}}`` line per content-bearing page."""
    lines = []
    for page in content_pages(pages):
        entry = f"[p{page.number}]"
        if page.text:
            entry += f" {page.text}"
        for img in page.images:
            entry += f" {{{{{img.storage_name}}}}}"
        lines.append(entry)
    return "\n".join(lines)


def build_partition_request(pages: Sequence[Page], config: ProjectConfig) -> ServiceRequest:
    prompt = USER_PROMPT_TEMPLATE.format(
        page_count=len(content_pages(pages)),
        listing=build_page_listing(pages),
    )
    return ServiceRequest(
        model=config.partition_model,
        parts=(TextPart(text=prompt),),
        system_prompt=SYSTEM_PROMPT,
        max_output_tokens=config.partition_max_tokens,
        temperature=config.synthesis_temperature,
    )


def _to_nodes(payloads: Sequence[PartitionNodePayload], prefix: str = "") -> tuple[ContentNode, ...]:
    """Convert payload nodes to content nodes with ids taken from tree position."""
    nodes = []
    for i, payload in enumerate(payloads, start=1):
        node_id = f"{prefix}{i}"
        nodes.append(ContentNode(
            id=node_id,
            title=payload.title.strip(),
            pages=frozenset(payload.pages),
            children=_to_nodes(payload.subsections, prefix=f"{node_id}."),
        ))
    return tuple(nodes)


def parse_partition_response(text: str) -> ContentTree:
    """Validate the partition JSON; a malformed payload raises ``ResponseParseError``."""
    payload = parse_payload(text, PartitionPayload, "partition")
    return ContentTree(
        title=payload.title.strip(),
        summary=payload.summary.strip(),
        nodes=_to_nodes(payload.sections),
        relationship_diagram=payload.diagram,
    )


async def partition_content(
    service: ContentService,
    pages: Sequence[Page],
    config: ProjectConfig,
    ledger: CostLedger,
) -> ContentTree:
    """Produce the content tree for *pages* in a single request.

    A document with no content-bearing pages gets an empty tree and no
    request is sent.
    """
    if not content_pages(pages):
        logger.info("No content-bearing pages, skipping partition request")
        return ContentTree()
    request = build_partition_request(pages, config)
    response = await request_with_timeout(service, request, config.request_timeout)
    entry = ledger.add(
        STAGE, request.model, response.input_tokens, response.output_tokens,
        rates_for(request.model, config),
    )
    logger.info(
        "Partition: %d in / %d out ($%.4f)",
        response.input_tokens, response.output_tokens, entry.cost,
    )
    tree = parse_partition_response(response.text)
    logger.info("Sections: %s", ", ".join(node.title for node in tree.nodes))
    return tree
