"""Drop decorative and repeated images before they reach the vision model.

Recurring slide backgrounds and logos are detected with a cheap sampled
fingerprint. Two images with the same fingerprint are treated as identical;
a collision loses one distinct image, which is accepted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..models import DedupStats, ImageAsset, Page, ProjectConfig

logger = logging.getLogger(__name__)

_SAMPLE_TARGET = 1024
_MASK32 = 0xFFFFFFFF


def fingerprint(data: bytes) -> str:
    """Return the ``"<hash>-<length>"`` key for *data*.

    Bytes are sampled at a stride of ``max(1, len // 1024)`` and folded into a
    32-bit ``h = 31*h + b`` rolling hash, reported as a signed integer.
    """
    length = len(data)
    step = max(1, length // _SAMPLE_TARGET)
    h = 0
    for i in range(0, length, step):
        h = (31 * h + data[i]) & _MASK32
    if h >= 0x80000000:
        h -= 0x100000000
    return f"{h}-{length}"


def is_decorative(image: ImageAsset, min_dimension: int) -> bool:
    return image.width < min_dimension or image.height < min_dimension


def deduplicate_images(
    images: Iterable[ImageAsset],
    *,
    min_dimension: int,
    stats: DedupStats | None = None,
) -> list[ImageAsset]:
    """Return *images* without decorative images and later duplicates, order preserved."""
    seen: set[str] = set()
    kept: list[ImageAsset] = []
    for image in images:
        if is_decorative(image, min_dimension):
            if stats is not None:
                stats.too_small += 1
            continue
        key = fingerprint(image.data)
        if key in seen:
            if stats is not None:
                stats.duplicates += 1
            continue
        seen.add(key)
        kept.append(image)
    if stats is not None:
        stats.kept = len(kept)
    return kept


def deduplicate_pages(
    pages: Sequence[Page],
    config: ProjectConfig,
) -> tuple[list[Page], DedupStats]:
    """Deduplicate images across the whole document; pages are rebuilt, never mutated."""
    stats = DedupStats()
    all_images = [img for page in pages for img in page.images]
    surviving = {
        img.id
        for img in deduplicate_images(
            all_images, min_dimension=config.min_image_dimension, stats=stats,
        )
    }
    result = [
        page.model_copy(update={
            "images": tuple(img for img in page.images if img.id in surviving),
        })
        for page in pages
    ]
    logger.info(
        "Deduplicated images: %d kept, %d duplicates, %d too small",
        stats.kept, stats.duplicates, stats.too_small,
    )
    return result, stats
