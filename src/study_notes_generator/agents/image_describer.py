"""ImageDescriber: batched vision requests that describe slide images.

Images are grouped per complexity tier, cut into fixed-size batches and sent
one request per batch, all batches concurrently. The model answers with one
``[image-id]`` block per image; blocks are matched back to images by id.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping, Sequence
from typing import TypeVar

from ..config import rates_for
from ..logging_config import PipelineCallbacks
from ..models import (
    ImageAsset,
    ImageDescription,
    ImagePart,
    ImageTier,
    Page,
    ProjectConfig,
    ServiceRequest,
    TextPart,
)
from ..tools.complexity_router import route_images
from ..tools.content_service import ContentService, request_with_timeout
from ..tools.cost_ledger import CostLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGE = "describe"

PROMPT_TEMPLATE = """\
You are analyzing images extracted from university lecture slides. These are \
scientific images or diagrams essential for study.

For each image, reason step by step before writing the final description:
1. Identify all visible text, labels, and symbols in the image.
2. Explain what each element represents in the context of the slide text provided.
3. Summarise the diagram in one sentence.

Then output a structured description with these parts:
- **Main concept**: What the diagram illustrates and why it matters.
- **Key labels**: Important text, terms, or symbols visible in the image.

Images to analyze:
{image_list}

The images follow in the same order. Respond in this exact format, one block \
per image, each starting with its ID in square brackets on its own line:

{format_example}

Continue for every image.
"""


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive batches of at most *size*."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def build_vision_prompt(batch: Sequence[ImageAsset], page_text: Mapping[int, str]) -> str:
    entries = []
    for i, img in enumerate(batch):
        text = page_text.get(img.page_number, "")
        ctx = f'\n   Slide text: "{text}"' if text else ""
        entries.append(f"{i + 1}. Image ID: {img.id} (page {img.page_number}){ctx}")
    example = "\n\n".join(f"[{img.id}]\n<structured description>" for img in batch)
    return PROMPT_TEMPLATE.format(image_list="\n\n".join(entries), format_example=example)


def build_batch_request(
    batch: Sequence[ImageAsset],
    page_text: Mapping[int, str],
    model: str,
    config: ProjectConfig,
) -> ServiceRequest:
    parts: list[TextPart | ImagePart] = [TextPart(text=build_vision_prompt(batch, page_text))]
    parts.extend(ImagePart(data=img.data, detail=config.vision_detail) for img in batch)
    return ServiceRequest(
        model=model,
        parts=tuple(parts),
        max_output_tokens=config.vision_max_tokens,
        temperature=config.vision_temperature,
    )


def parse_image_descriptions(text: str, batch: Sequence[ImageAsset]) -> list[ImageDescription]:
    """Match ``[id]`` blocks in *text* back to the images of *batch*.

    Markers only count at the start of a line, so inline cross-references such
    as "compare with [img-4-1]" stay inside the block that mentions them. A
    block runs until the next marker of another image in the batch. When a
    marker is missing, a single-image batch takes the whole response; in a
    multi-image batch the image is left undescribed.
    """
    markers = {
        img.id: re.compile(rf"^[ \t]*\[{re.escape(img.id)}\]", re.MULTILINE) for img in batch
    }
    descriptions: list[ImageDescription] = []

    for img in batch:
        match = markers[img.id].search(text)
        if match is None:
            if len(batch) == 1:
                descriptions.append(ImageDescription(
                    image_id=img.id, page_number=img.page_number, text=text.strip(),
                ))
            else:
                logger.warning("No description block for %s in batch response", img.id)
            continue

        start = match.end()
        end = len(text)
        for other_id, other_marker in markers.items():
            if other_id == img.id:
                continue
            other = other_marker.search(text, start)
            if other is not None and other.start() < end:
                end = other.start()
        descriptions.append(ImageDescription(
            image_id=img.id,
            page_number=img.page_number,
            text=text[start:end].strip(),
        ))

    return descriptions


async def describe_batch(
    service: ContentService,
    batch: Sequence[ImageAsset],
    tier: ImageTier,
    page_text: Mapping[int, str],
    config: ProjectConfig,
    ledger: CostLedger,
    *,
    label: str = "",
    callbacks: PipelineCallbacks | None = None,
) -> list[ImageDescription]:
    """Describe one batch; its cost is booked once the response is in."""
    model = config.model_for_tier(tier)
    rates = rates_for(model, config)
    request = build_batch_request(batch, page_text, model, config)
    response = await request_with_timeout(service, request, config.request_timeout)

    entry = ledger.add(STAGE, model, response.input_tokens, response.output_tokens, rates)
    logger.debug(
        "%s (%s): %d in / %d out ($%.4f)",
        label, model, response.input_tokens, response.output_tokens, entry.cost,
    )
    if callbacks is not None:
        callbacks.on_batch_done(
            label or f"{tier.value} batch", response.input_tokens, response.output_tokens, entry.cost,
        )
    return parse_image_descriptions(response.text, batch)


async def describe_images(
    service: ContentService,
    pages: Sequence[Page],
    config: ProjectConfig,
    ledger: CostLedger,
    callbacks: PipelineCallbacks | None = None,
) -> list[ImageDescription]:
    """Describe every image on *pages*, returning descriptions in document order.

    All batches of all tiers are launched before any is awaited; the first
    failure propagates and the other results are discarded.
    """
    images = [img for page in pages for img in page.images]
    if not images:
        logger.info("No images found, skipping vision analysis")
        return []

    page_text = {page.number: page.text for page in pages}
    routed = route_images(images, config)

    jobs = []
    for tier, tier_images in routed.items():
        batches = chunk(tier_images, config.vision_batch_size)
        for idx, batch in enumerate(batches):
            label = f"{tier.value} batch {idx + 1}/{len(batches)}"
            jobs.append(describe_batch(
                service, batch, tier, page_text, config, ledger,
                label=label, callbacks=callbacks,
            ))

    logger.info(
        "Describing %d images in %d batches (%d simple, %d complex)",
        len(images), len(jobs),
        len(routed[ImageTier.SIMPLE]), len(routed[ImageTier.COMPLEX]),
    )
    batch_results = await asyncio.gather(*jobs)

    by_id = {d.image_id: d for result in batch_results for d in result}
    return [by_id[img.id] for img in images if img.id in by_id]
