"""Extract per-page text and images from a PDF, then prepare images for the model.

Extraction keeps raw embedded image bytes so the deduplicator sees identical
bytes for repeated backgrounds. :func:`prepare_images` runs afterwards and
shrinks the survivors to a bounded-width JPEG written under ``images_dir``.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Sequence
from pathlib import Path

import fitz
from PIL import Image

from ..models import ImageAsset, Page, ProjectConfig

logger = logging.getLogger(__name__)

# Embedded formats Pillow decodes directly. Others, such as JBIG2 or JPEG 2000,
# are rendered through PyMuPDF first.
PILLOW_FORMATS = frozenset({
    "png", "jpeg", "jpg", "bmp", "gif", "tiff", "tif", "pnm", "ppm", "pgm", "pbm",
})


def _decodable_bytes(doc: fitz.Document, xref: int, base: dict) -> bytes:
    """Return image bytes Pillow can open for the image at *xref*."""
    if base.get("ext", "").lower() in PILLOW_FORMATS:
        return base["image"]
    pix = fitz.Pixmap(doc, xref)
    if pix.colorspace is not None and pix.colorspace.n > 3:
        pix = fitz.Pixmap(fitz.csRGB, pix)
    if pix.alpha:
        pix = fitz.Pixmap(pix, 0)
    return pix.tobytes("png")


def extract_pages(pdf_path: str | Path) -> list[Page]:
    """Read every page of *pdf_path* into a :class:`Page` with raw image bytes."""
    path = Path(pdf_path)
    if not path.exists():
        raise FileNotFoundError(f"PDF not found: {path}")

    pages: list[Page] = []
    with fitz.open(str(path)) as doc:
        logger.info("Processing %d pages of %s", doc.page_count, path.name)
        for index, page in enumerate(doc):
            number = index + 1
            text = page.get_text("text").strip()
            images: list[ImageAsset] = []
            for img in page.get_images(full=True):
                xref = img[0]
                try:
                    base = doc.extract_image(xref)
                except (RuntimeError, ValueError) as e:
                    logger.warning("Page %d: cannot extract image xref %d: %s", number, xref, e)
                    continue
                if not base or not base.get("image"):
                    continue
                try:
                    data = _decodable_bytes(doc, xref, base)
                except (RuntimeError, ValueError) as e:
                    logger.warning(
                        "Page %d: cannot decode %s image xref %d: %s", number, base.get("ext"), xref, e,
                    )
                    continue
                image_id = f"img-{number}-{len(images) + 1}"
                images.append(ImageAsset(
                    id=image_id,
                    page_number=number,
                    width=base.get("width", 0),
                    height=base.get("height", 0),
                    byte_length=len(data),
                    data=data,
                    storage_name=f"{image_id}.jpg",
                ))
            pages.append(Page(number=number, text=text, images=tuple(images)))

    with_images = sum(1 for p in pages if p.images)
    with_text = sum(1 for p in pages if p.text)
    logger.info(
        "Extracted %d images from %d pages, text on %d pages",
        sum(len(p.images) for p in pages), with_images, with_text,
    )
    return pages


def encode_jpeg(data: bytes, *, max_width: int, quality: int) -> tuple[bytes, int, int]:
    """Downscale to *max_width* (keeping aspect ratio) and re-encode as JPEG."""
    with Image.open(io.BytesIO(data)) as im:
        im = im.convert("RGB")
        if im.width > max_width:
            ratio = max_width / float(im.width)
            im = im.resize((max_width, max(1, int(im.height * ratio))))
        buf = io.BytesIO()
        im.save(buf, format="JPEG", quality=quality, optimize=True)
        return buf.getvalue(), im.width, im.height


def prepare_images(
    pages: Sequence[Page],
    config: ProjectConfig,
    images_dir: str | Path,
) -> list[Page]:
    """Resize, re-encode and write every image; return pages holding the new bytes.

    Images Pillow cannot decode are dropped with a warning.
    """
    out_dir = Path(images_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    prepared: list[Page] = []
    for page in pages:
        images: list[ImageAsset] = []
        for img in page.images:
            try:
                data, width, height = encode_jpeg(
                    img.data, max_width=config.image_max_width, quality=config.image_jpeg_quality,
                )
            except OSError as e:
                logger.warning("Skipping %s: cannot decode image: %s", img.id, e)
                continue
            (out_dir / img.storage_name).write_bytes(data)
            images.append(img.model_copy(update={
                "data": data,
                "width": width,
                "height": height,
                "byte_length": len(data),
            }))
        prepared.append(page.model_copy(update={"images": tuple(images)}))
    return prepared
