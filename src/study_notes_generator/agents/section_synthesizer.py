"""SectionSynthesizer: one request per synthesis target, all in parallel.

Each request gets the node's pages (text plus image descriptions) and returns
a JSON payload: the markdown section and its review questions, glossary and
pitfalls notes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

from ..config import rates_for
from ..logging_config import PipelineCallbacks
from ..models import (
    ContentNode,
    ContentTree,
    ImageDescription,
    Page,
    ProjectConfig,
    SectionPayload,
    SectionResult,
    ServiceRequest,
    TextPart,
)
from ..tools.content_service import ContentService, request_with_timeout
from ..tools.cost_ledger import CostLedger
from .response_parsing import parse_payload

logger = logging.getLogger(__name__)

STAGE = "synthesize"

NO_DESCRIPTION = "(no description)"

SYSTEM_PROMPT = """\
You are an expert at turning university lecture content into clear, engaging \
study notes. Write in a descriptive, narrative style. Place diagrams INLINE \
next to the concept they illustrate (as ![caption](FILENAME)). Use **bold** \
for key terms. Be thorough but readable. Output valid JSON only.
"""

USER_PROMPT_TEMPLATE = """\
Write the study notes for this single section.

Section: **{title}**
Pages covered: {page_list}
{outline_block}
RULES:
- "main_text": markdown starting with a `{heading_marks} {title}` heading, \
with deeper subheadings as needed.
- Weave in image references where they help: use ![brief caption](FILENAME) \
right after the sentence that explains that concept. Only use these filenames: \
{filenames}. Only include images that are critical for understanding.
- Descriptive and engaging; explain the "why" behind concepts. Use transitions \
between ideas. Use **bold** for key terms, bullets and short paragraphs.
- "review_questions": 2-3 questions with brief answers for this section \
(**Q:** ... **A:** ...).
- "glossary": one-sentence definitions for the key bold terms of this section, \
as a markdown list.
- "pitfalls": 1-2 common misconceptions with brief corrections, as a markdown list.

Respond with ONLY a single JSON object:
{{"main_text": "...", "review_questions": "...", "glossary": "...", "pitfalls": "..."}}

--- CONTENT FOR THIS SECTION ---
{content}
"""


def build_section_content(
    pages: Sequence[Page],
    descriptions: Mapping[str, ImageDescription],
) -> str:
    """Page text with each image's filename and description underneath."""
    entries = []
    for page in pages:
        if not page.has_content:
            continue
        entry = f"[p{page.number}]"
        if page.text:
            entry += f" {page.text}"
        for img in page.images:
            desc = descriptions.get(img.id)
            entry += f"\n  {{{{{img.storage_name}}}}}: {desc.text if desc else NO_DESCRIPTION}"
        entries.append(entry)
    return "\n\n".join(entries)


def _outline(node: ContentNode, indent: str = "") -> list[str]:
    lines = []
    for child in node.children:
        pages = ", ".join(str(p) for p in sorted(child.transitive_pages()))
        lines.append(f"{indent}- {child.title} (pages {pages})")
        lines.extend(_outline(child, indent + "  "))
    return lines


def build_section_request(
    node: ContentNode,
    depth: int,
    pages: Sequence[Page],
    descriptions: Mapping[str, ImageDescription],
    config: ProjectConfig,
) -> ServiceRequest:
    """Request for *node*, scoped to the pages it declares."""
    declared = node.transitive_pages()
    node_pages = [p for p in pages if p.number in declared]
    filenames = [img.storage_name for p in node_pages for img in p.images]
    outline = _outline(node)
    outline_block = (
        "Subsections (cover them in this order):\n" + "\n".join(outline) + "\n"
        if outline else ""
    )
    prompt = USER_PROMPT_TEMPLATE.format(
        title=node.title,
        page_list=", ".join(str(n) for n in sorted(declared)),
        outline_block=outline_block,
        heading_marks="#" * min(depth + 2, 6),
        filenames=", ".join(filenames) if filenames else "(none)",
        content=build_section_content(node_pages, descriptions),
    )
    return ServiceRequest(
        model=config.synthesis_model,
        parts=(TextPart(text=prompt),),
        system_prompt=SYSTEM_PROMPT,
        max_output_tokens=config.section_max_tokens,
        temperature=config.synthesis_temperature,
    )


def parse_section_response(text: str, node_id: str) -> SectionResult:
    """Validate a section payload; a malformed payload raises ``ResponseParseError``."""
    payload = parse_payload(text, SectionPayload, f"section {node_id!r}")
    return SectionResult(
        node_id=node_id,
        main_text=payload.main_text.strip(),
        review_questions=payload.review_questions.strip(),
        glossary=payload.glossary.strip(),
        pitfalls=payload.pitfalls.strip(),
    )


async def synthesize_section(
    service: ContentService,
    node: ContentNode,
    depth: int,
    pages: Sequence[Page],
    descriptions: Mapping[str, ImageDescription],
    config: ProjectConfig,
    ledger: CostLedger,
    callbacks: PipelineCallbacks | None = None,
) -> SectionResult:
    if callbacks is not None:
        callbacks.on_section_start(node.id, node.title)
    request = build_section_request(node, depth, pages, descriptions, config)
    response = await request_with_timeout(service, request, config.request_timeout)
    entry = ledger.add(
        STAGE, request.model, response.input_tokens, response.output_tokens,
        rates_for(request.model, config),
    )
    logger.debug(
        "Section %s: %d in / %d out ($%.4f)",
        node.id, response.input_tokens, response.output_tokens, entry.cost,
    )
    result = parse_section_response(response.text, node.id)
    if callbacks is not None:
        callbacks.on_section_end(node.id)
    return result


async def synthesize_sections(
    service: ContentService,
    tree: ContentTree,
    pages: Sequence[Page],
    descriptions: Sequence[ImageDescription],
    config: ProjectConfig,
    ledger: CostLedger,
    callbacks: PipelineCallbacks | None = None,
) -> dict[str, SectionResult]:
    """Synthesize every target node concurrently; any failure fails the stage."""
    desc_map = {d.image_id: d for d in descriptions}
    depths = {node.id: depth for depth, node in tree.walk()}
    targets = tree.synthesis_targets(config.synthesis_level)
    logger.info("Synthesizing %d sections in parallel", len(targets))

    results = await asyncio.gather(*(
        synthesize_section(
            service, node, depths[node.id], pages, desc_map, config, ledger, callbacks,
        )
        for node in targets
    ))
    return {r.node_id: r for r in results}
