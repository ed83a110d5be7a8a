"""Route images to the simple or complex vision tier by size."""

from __future__ import annotations

from collections.abc import Iterable

from ..models import ImageAsset, ImageTier, ProjectConfig


def classify_image(image: ImageAsset, config: ProjectConfig) -> ImageTier:
    """``COMPLEX`` when the image is wider or heavier than the configured thresholds."""
    if (
        image.width > config.complex_image_min_width
        or image.byte_length > config.complex_image_min_bytes
    ):
        return ImageTier.COMPLEX
    return ImageTier.SIMPLE


def route_images(
    images: Iterable[ImageAsset],
    config: ProjectConfig,
) -> dict[ImageTier, list[ImageAsset]]:
    """Group images per tier, keeping document order inside each group."""
    routed: dict[ImageTier, list[ImageAsset]] = {tier: [] for tier in ImageTier}
    for image in images:
        routed[classify_image(image, config)].append(image)
    return routed
