"""Pipeline: orchestration of study-notes synthesis.

Phase 1: DEDUPLICATION  drop decorative and repeated images
Phase 2: DESCRIPTION    batched vision requests per complexity tier  } run
         PARTITION      one request outlining the document          } concurrently
Phase 3: VALIDATION     coverage / overlap diagnostics (non-fatal)
Phase 4: SYNTHESIS      one request per synthesis target, in parallel
Phase 5: ASSEMBLY       deterministic merge in content-tree order

Any service failure or malformed response aborts the run; no partial
document is produced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from .agents.content_partitioner import content_pages, partition_content
from .agents.image_describer import describe_images
from .agents.section_synthesizer import synthesize_sections
from .logging_config import PipelineCallbacks, RichCallbacks
from .models import (
    ContentTree,
    DedupStats,
    ImageDescription,
    Page,
    PartitionReport,
    PipelinePhase,
    PipelineResult,
    ProjectConfig,
    SectionResult,
)
from .tools.content_service import AG2ContentService, ContentService
from .tools.cost_ledger import CostLedger
from .tools.deduplicator import deduplicate_pages
from .tools.document_assembler import assemble_document
from .tools.partition_validator import validate_partition
from .tools.pdf_extractor import extract_pages, prepare_images

logger = logging.getLogger(__name__)


class Pipeline:
    """Runs the synthesis phases for one document.

    A ``Pipeline`` is single-use: state from a run stays on the instance for
    inspection, and the cost ledger accumulates across phases.
    """

    def __init__(
        self,
        config: ProjectConfig,
        service: ContentService | None = None,
        callbacks: PipelineCallbacks | None = None,
    ) -> None:
        self.config = config
        self.service = service or AG2ContentService(config)
        self.callbacks = callbacks or RichCallbacks()
        self.ledger = CostLedger()

        # State
        self.pages: list[Page] = []
        self.dedup_stats: DedupStats | None = None
        self.descriptions: list[ImageDescription] = []
        self.content_tree: ContentTree | None = None
        self.partition_report: PartitionReport | None = None
        self.section_results: dict[str, SectionResult] = {}
        self.document: str | None = None
        self.warnings: list[str] = []

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.callbacks.on_warning(message)

    # -----------------------------------------------------------------------
    # Phase 1: Deduplication
    # -----------------------------------------------------------------------

    def run_deduplication(self, pages: Sequence[Page]) -> list[Page]:
        self.callbacks.on_phase_start("DEDUPLICATION", "Dropping decorative and repeated images")
        self.pages, self.dedup_stats = deduplicate_pages(pages, self.config)
        self.callbacks.on_phase_end("DEDUPLICATION", True)
        return self.pages

    # -----------------------------------------------------------------------
    # Phase 2: Description + Partition
    # -----------------------------------------------------------------------

    async def run_analysis(self) -> tuple[list[ImageDescription], ContentTree]:
        """Describe images and partition the document concurrently.

        The partition request only needs page text and image filenames, so
        it does not wait for the descriptions.
        """
        self.callbacks.on_phase_start("ANALYSIS", "Describing images and outlining content")
        descriptions, tree = await asyncio.gather(
            describe_images(self.service, self.pages, self.config, self.ledger, self.callbacks),
            partition_content(self.service, self.pages, self.config, self.ledger),
        )
        self.descriptions = descriptions
        self.content_tree = tree

        total_images = sum(len(p.images) for p in self.pages)
        missing = total_images - len(descriptions)
        if missing:
            self._warn(f"{missing} image(s) received no description")
        logger.info(
            "Descriptions cost $%.4f, partition cost $%.4f",
            self.ledger.stage_total("describe"), self.ledger.stage_total("partition"),
        )
        self.callbacks.on_phase_end("ANALYSIS", True)
        return descriptions, tree

    # -----------------------------------------------------------------------
    # Phase 3: Validation
    # -----------------------------------------------------------------------

    def run_validation(self) -> PartitionReport:
        if self.content_tree is None:
            raise RuntimeError("run_analysis() must complete before validation")
        self.callbacks.on_phase_start("VALIDATION", "Checking page coverage and overlaps")
        universe = [p.number for p in content_pages(self.pages)]
        report = validate_partition(self.content_tree, universe)
        for message in report.messages():
            self._warn(message)
        self.partition_report = report
        self.callbacks.on_phase_end("VALIDATION", True)
        return report

    # -----------------------------------------------------------------------
    # Phase 4: Synthesis
    # -----------------------------------------------------------------------

    async def run_synthesis(self) -> dict[str, SectionResult]:
        if self.content_tree is None:
            raise RuntimeError("run_analysis() must complete before synthesis")
        self.callbacks.on_phase_start("SYNTHESIS", "Writing every section in parallel")
        self.section_results = await synthesize_sections(
            self.service,
            self.content_tree,
            self.pages,
            self.descriptions,
            self.config,
            self.ledger,
            self.callbacks,
        )
        logger.info("Synthesis cost $%.4f", self.ledger.stage_total("synthesize"))
        self.callbacks.on_phase_end("SYNTHESIS", True)
        return self.section_results

    # -----------------------------------------------------------------------
    # Phase 5: Assembly
    # -----------------------------------------------------------------------

    def run_assembly(self) -> str:
        if self.content_tree is None:
            raise RuntimeError("run_analysis() must complete before assembly")
        self.callbacks.on_phase_start("ASSEMBLY", "Merging sections in outline order")
        self.document = assemble_document(
            self.content_tree, self.section_results, self.config.synthesis_level,
        )
        self.callbacks.on_phase_end("ASSEMBLY", True)
        return self.document

    # -----------------------------------------------------------------------
    # Full pipeline
    # -----------------------------------------------------------------------

    async def arun(self, pages: Sequence[Page], *, deduplicate: bool = True) -> PipelineResult:
        """Run every phase on *pages*."""
        errors: list[str] = []
        phases: list[PipelinePhase] = []

        try:
            if deduplicate:
                self.run_deduplication(pages)
                phases.append(PipelinePhase.DEDUPLICATION)
            else:
                self.pages = list(pages)

            await self.run_analysis()
            phases.extend([PipelinePhase.DESCRIPTION, PipelinePhase.PARTITION])

            self.run_validation()
            phases.append(PipelinePhase.VALIDATION)

            await self.run_synthesis()
            phases.append(PipelinePhase.SYNTHESIS)

            self.run_assembly()
            phases.append(PipelinePhase.ASSEMBLY)

        except Exception as e:
            logger.exception("Pipeline failed")
            self.callbacks.on_error(str(e))
            errors.append(str(e))

        return self._result(phases, errors)

    def _result(self, phases: list[PipelinePhase], errors: list[str]) -> PipelineResult:
        success = PipelinePhase.ASSEMBLY in phases
        return PipelineResult(
            success=success,
            document=self.document if success else None,
            content_tree=self.content_tree,
            partition_report=self.partition_report,
            image_descriptions=self.descriptions,
            total_cost=self.ledger.total,
            errors=errors,
            warnings=list(self.warnings),
            phases_completed=phases,
        )

    def run(self, pages: Sequence[Page], *, deduplicate: bool = True) -> PipelineResult:
        """Synchronous wrapper around :meth:`arun`."""
        return asyncio.run(self.arun(pages, deduplicate=deduplicate))

    def run_pdf(self, pdf_path: str | Path, images_dir: str | Path) -> PipelineResult:
        """Extract *pdf_path*, deduplicate on raw bytes, prepare images, then run."""
        phases: list[PipelinePhase] = []
        try:
            pages = self.run_deduplication(extract_pages(pdf_path))
            phases.append(PipelinePhase.DEDUPLICATION)
            prepared = prepare_images(pages, self.config, images_dir)
        except Exception as e:
            logger.exception("Reading %s failed", pdf_path)
            self.callbacks.on_error(str(e))
            return self._result(phases, [str(e)])

        result = self.run(prepared, deduplicate=False)
        result.phases_completed.insert(0, PipelinePhase.DEDUPLICATION)
        return result
