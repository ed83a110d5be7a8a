"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from study_notes_generator.models import (
    ImageAsset,
    ImagePart,
    Page,
    ProjectConfig,
    ServiceRequest,
    ServiceResponse,
    TextPart,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"


def make_image(
    image_id: str,
    page_number: int,
    *,
    data: bytes | None = None,
    width: int = 300,
    height: int = 200,
) -> ImageAsset:
    payload = data if data is not None else image_id.encode() * 40
    return ImageAsset(
        id=image_id,
        page_number=page_number,
        width=width,
        height=height,
        byte_length=len(payload),
        data=payload,
        storage_name=f"{image_id}.jpg",
    )


def request_text(request: ServiceRequest) -> str:
    return "\n".join(p.text for p in request.parts if isinstance(p, TextPart))


def is_vision(request: ServiceRequest) -> bool:
    return any(isinstance(p, ImagePart) for p in request.parts)


def is_partition(request: ServiceRequest) -> bool:
    return "SLIDE TEXT" in request_text(request)


def section_title(request: ServiceRequest) -> str:
    text = request_text(request)
    start = text.index("Section: **") + len("Section: **")
    return text[start:text.index("**", start)]


class FakeService:
    """Scripted ContentService that records every request it receives."""

    def __init__(
        self,
        handler: Callable[[ServiceRequest], ServiceResponse | str],
        *,
        delay: Callable[[ServiceRequest], float] | None = None,
    ) -> None:
        self.handler = handler
        self.delay = delay
        self.requests: list[ServiceRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, request: ServiceRequest) -> ServiceResponse:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay(request) if self.delay else 0)
            result = self.handler(request)
        finally:
            self.in_flight -= 1
        if isinstance(result, str):
            return ServiceResponse(text=result, input_tokens=100, output_tokens=50)
        return result


def vision_reply(request: ServiceRequest) -> str:
    """Answer a vision prompt with one block per ``Image ID:`` listed."""
    ids = [
        line.split("Image ID: ", 1)[1].split(" ", 1)[0]
        for line in request_text(request).splitlines()
        if "Image ID: " in line
    ]
    return "\n\n".join(f"[{i}]\nDescription of {i}." for i in ids)


def partition_json(
    sections: list[dict[str, Any]],
    *,
    title: str = "Cell Biology",
    summary: str = "An overview of cells.",
    diagram: str = "flowchart LR\n  A --> B",
) -> str:
    return json.dumps({
        "title": title,
        "summary": summary,
        "sections": sections,
        "diagram": diagram,
    })


def section_json(title: str) -> str:
    return json.dumps({
        "main_text": f"## {title}\n\nBody of {title}.",
        "review_questions": f"**Q:** About {title}? **A:** Yes.",
        "glossary": f"- **{title}**: a term.",
        "pitfalls": f"- Confusing {title}.",
    })


@pytest.fixture
def config() -> ProjectConfig:
    return ProjectConfig(request_timeout=5)


@pytest.fixture
def ten_pages() -> list[Page]:
    """10 pages; image A repeats on pages 2 and 7, image B is on page 4."""
    a_bytes = bytes(range(256)) * 8
    b_bytes = bytes(reversed(range(256))) * 8
    pages = []
    for n in range(1, 11):
        images: tuple[ImageAsset, ...] = ()
        if n in (2, 7):
            images = (make_image(f"img-{n}-1", n, data=a_bytes),)
        elif n == 4:
            images = (make_image(f"img-{n}-1", n, data=b_bytes),)
        pages.append(Page(number=n, text=f"Slide {n} text", images=images))
    return pages


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG
