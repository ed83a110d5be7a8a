"""Pydantic models for the study notes generator pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ImageTier(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class PipelinePhase(str, Enum):
    DEDUPLICATION = "deduplication"
    DESCRIPTION = "description"
    PARTITION = "partition"
    VALIDATION = "validation"
    SYNTHESIS = "synthesis"
    ASSEMBLY = "assembly"


class SynthesisLevel(str, Enum):
    TOP = "top"
    LEAF = "leaf"


class OutputFormat(str, Enum):
    MARKDOWN = "markdown"
    HTML = "html"


# ---------------------------------------------------------------------------
# Source document (produced by the extractor, read-only afterwards)
# ---------------------------------------------------------------------------

class ImageAsset(BaseModel):
    """One image extracted from a page."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Image id, unique within the run, e.g. 'img-3-1'")
    page_number: int = Field(..., ge=1)
    width: int = Field(..., ge=0, description="Pixel width")
    height: int = Field(..., ge=0, description="Pixel height")
    byte_length: int = Field(..., ge=0, description="Encoded size in bytes")
    data: bytes = Field(default=b"", repr=False)
    storage_name: str = Field(..., description="Filename used for embedding, e.g. 'img-3-1.jpg'")


class Page(BaseModel):
    """One page of the source document."""
    model_config = ConfigDict(frozen=True)

    number: int = Field(..., ge=1, description="1-based page number")
    text: str = Field(default="")
    images: tuple[ImageAsset, ...] = Field(default=())

    @property
    def has_content(self) -> bool:
        return bool(self.text) or bool(self.images)


class ImageDescription(BaseModel):
    model_config = ConfigDict(frozen=True)

    image_id: str
    page_number: int
    text: str


class DedupStats(BaseModel):
    kept: int = 0
    duplicates: int = 0
    too_small: int = 0


# ---------------------------------------------------------------------------
# Content tree
# ---------------------------------------------------------------------------

class ContentNode(BaseModel):
    """One entry of the hierarchical outline."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique across the tree, e.g. '2.1'")
    title: str
    pages: frozenset[int] = Field(default_factory=frozenset)
    children: tuple[ContentNode, ...] = Field(default=())

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def transitive_pages(self) -> frozenset[int]:
        """Own pages unioned with every descendant's pages."""
        pages = set(self.pages)
        for child in self.children:
            pages |= child.transitive_pages()
        return frozenset(pages)

    def walk(self, depth: int = 0) -> Iterator[tuple[int, ContentNode]]:
        yield depth, self
        for child in self.children:
            yield from child.walk(depth + 1)


class ContentTree(BaseModel):
    """Outline produced once per run by the partitioner."""
    model_config = ConfigDict(frozen=True)

    title: str = ""
    summary: str = ""
    nodes: tuple[ContentNode, ...] = Field(default=())
    relationship_diagram: str = ""

    def walk(self) -> Iterator[tuple[int, ContentNode]]:
        """Depth-first, left-to-right traversal yielding ``(depth, node)``."""
        for node in self.nodes:
            yield from node.walk()

    def find(self, node_id: str) -> ContentNode | None:
        for _, node in self.walk():
            if node.id == node_id:
                return node
        return None

    def synthesis_targets(self, level: SynthesisLevel) -> list[ContentNode]:
        """Nodes that get a prose section: every top-level node, or every leaf."""
        if level == SynthesisLevel.TOP:
            return list(self.nodes)
        return [node for _, node in self.walk() if node.is_leaf]


class SectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_id: str
    main_text: str = ""
    review_questions: str = ""
    glossary: str = ""
    pitfalls: str = ""


# ---------------------------------------------------------------------------
# Service response schemas (validated, never guessed)
# ---------------------------------------------------------------------------

class PartitionNodePayload(BaseModel):
    title: str = Field(..., min_length=1)
    pages: list[int] = Field(..., description="Exact page numbers covered")
    subsections: list[PartitionNodePayload] = Field(default_factory=list)


class PartitionPayload(BaseModel):
    """JSON object the partitioner asks the service for."""
    title: str = Field(..., description="Concise document title")
    summary: str = Field(..., description="Short free-text summary")
    sections: list[PartitionNodePayload] = Field(..., min_length=1)
    diagram: str = Field(..., description="Mermaid flowchart source")


class SectionPayload(BaseModel):
    """JSON object the section synthesizer asks the service for."""
    main_text: str = Field(..., min_length=1)
    review_questions: str = Field(default="")
    glossary: str = Field(default="")
    pitfalls: str = Field(default="")


# ---------------------------------------------------------------------------
# Content-understanding service boundary
# ---------------------------------------------------------------------------

class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["image"] = "image"
    data: bytes = Field(repr=False)
    mime_type: str = "image/jpeg"
    detail: str = "low"


ContentPart = Union[TextPart, ImagePart]


class ServiceRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    parts: tuple[ContentPart, ...]
    system_prompt: str = ""
    max_output_tokens: int = 4000
    temperature: float = 0.0


class ServiceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class CostEntry(BaseModel):
    """One ledger contribution."""
    model_config = ConfigDict(frozen=True)

    stage: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float


# ---------------------------------------------------------------------------
# Validation diagnostics
# ---------------------------------------------------------------------------

class PageOverlap(BaseModel):
    """Two siblings claiming the same pages; ``first_node_id`` comes first in tree order."""
    parent_id: str | None = Field(default=None, description="None for top-level siblings")
    first_node_id: str
    second_node_id: str
    pages: list[int]


class EscapedChild(BaseModel):
    parent_id: str
    child_id: str
    pages: list[int] = Field(..., description="Child pages outside the parent's own pages")


class UnassignedPages(BaseModel):
    parent_id: str
    pages: list[int] = Field(..., description="Parent pages that no child claims")


class PartitionReport(BaseModel):
    uncovered: list[int] = Field(default_factory=list)
    overlaps: list[PageOverlap] = Field(default_factory=list)
    unknown_pages: list[int] = Field(default_factory=list)
    escaped_children: list[EscapedChild] = Field(default_factory=list)
    unassigned_parent_pages: list[UnassignedPages] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.uncovered
            or self.overlaps
            or self.unknown_pages
            or self.escaped_children
            or self.unassigned_parent_pages
        )

    def messages(self) -> list[str]:
        """Human-readable warning lines."""
        lines: list[str] = []
        if self.uncovered:
            lines.append(f"Pages not covered by any section: {self.uncovered}")
        for o in self.overlaps:
            scope = f"under '{o.parent_id}'" if o.parent_id else "at top level"
            lines.append(
                f"Pages {o.pages} claimed by both '{o.first_node_id}' and "
                f"'{o.second_node_id}' ({scope})"
            )
        if self.unknown_pages:
            lines.append(f"Sections reference pages with no content: {self.unknown_pages}")
        for e in self.escaped_children:
            lines.append(
                f"Subsection '{e.child_id}' claims pages {e.pages} outside parent '{e.parent_id}'"
            )
        for u in self.unassigned_parent_pages:
            lines.append(f"Pages {u.pages} of '{u.parent_id}' are not in any of its subsections")
        return lines


# ---------------------------------------------------------------------------
# Top-level Pipeline Result
# ---------------------------------------------------------------------------

class PipelineResult(BaseModel):
    """Top-level result of the full pipeline run."""
    success: bool = Field(...)
    document: str | None = Field(default=None, description="Final markdown; None on failure")
    content_tree: ContentTree | None = Field(default=None)
    partition_report: PartitionReport | None = Field(default=None)
    image_descriptions: list[ImageDescription] = Field(default_factory=list)
    total_cost: float = Field(default=0.0, description="USD")
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    phases_completed: list[PipelinePhase] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Project Configuration (loaded from YAML or Hydra)
# ---------------------------------------------------------------------------

class TokenRates(BaseModel):
    """USD per token."""
    input: float = Field(..., ge=0)
    output: float = Field(..., ge=0)


def _default_rates() -> dict[str, TokenRates]:
    return {
        "gpt-4o-mini": TokenRates(input=0.15 / 1_000_000, output=0.60 / 1_000_000),
        "gpt-4o": TokenRates(input=2.50 / 1_000_000, output=5.00 / 1_000_000),
    }


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint override (e.g. a model served from a different resource)."""
    endpoint: str = Field(..., description="Endpoint URL for this model")
    api_key: str = Field(default="", description="API key override (empty = use global)")
    api_version: str = Field(default="", description="API version override (empty = use global)")
    api_type: str | None = Field(default=None, description="Explicit AG2 api_type")


class ModelConfig(BaseModel):
    """Model selection per tier / stage."""
    simple: str = Field(default="gpt-4o-mini", description="Model for simple images")
    complex: str = Field(default="gpt-4o", description="Model for complex images")
    partition: str | None = Field(default=None, description="Model for partitioning (default: simple)")
    synthesis: str | None = Field(default=None, description="Model for section synthesis (default: simple)")
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class ServiceConfig(BaseModel):
    """Connection settings for the OpenAI-compatible service."""
    api_key: str = Field(default="", description="API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version (Azure only)")
    endpoint: str = Field(default="", description="Endpoint URL; empty = api.openai.com")


class ProjectConfig(BaseModel):
    """Full project configuration."""
    project_name: str = Field(default="study-notes")

    # File paths
    input_pdf: str | None = Field(default=None, description="Source PDF")
    output_dir: str = Field(default="output/", description="Output directory")
    images_dir: str = Field(default="output/images/", description="Where extracted images are written")
    output_format: OutputFormat = Field(default=OutputFormat.MARKDOWN)

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)
    rates: dict[str, TokenRates] = Field(default_factory=_default_rates)

    # Images
    min_image_dimension: int = Field(default=50, description="Images smaller than this (px) are decorative")
    complex_image_min_width: int = Field(default=500, description="Wider images are routed to the complex tier")
    complex_image_min_bytes: int = Field(default=102_400, description="Larger images are routed to the complex tier")
    image_max_width: int = Field(default=512)
    image_jpeg_quality: int = Field(default=82, ge=1, le=100)

    # Requests
    vision_batch_size: int = Field(default=5, ge=1)
    vision_detail: str = Field(default="low", description="'low', 'high', or 'auto'")
    vision_max_tokens: int = Field(default=3000)
    partition_max_tokens: int = Field(default=4000)
    section_max_tokens: int = Field(default=4000)
    vision_temperature: float = Field(default=0.2)
    synthesis_temperature: float = Field(default=0.0)
    request_timeout: float = Field(default=120.0, gt=0, description="Per-request timeout in seconds")

    synthesis_level: SynthesisLevel = Field(default=SynthesisLevel.TOP)

    @property
    def partition_model(self) -> str:
        return self.models.partition or self.models.simple

    @property
    def synthesis_model(self) -> str:
        return self.models.synthesis or self.models.simple

    def model_for_tier(self, tier: ImageTier) -> str:
        return self.models.complex if tier == ImageTier.COMPLEX else self.models.simple
