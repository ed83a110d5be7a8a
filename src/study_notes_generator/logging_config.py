"""Rich console setup and pipeline progress helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from .models import PipelineResult

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Pipeline callbacks protocol
# ---------------------------------------------------------------------------


class PipelineCallbacks(Protocol):
    """Protocol for pipeline progress reporting."""

    def on_phase_start(self, phase: str, description: str) -> None: ...
    def on_phase_end(self, phase: str, success: bool) -> None: ...
    def on_batch_done(
        self, label: str, input_tokens: int, output_tokens: int, cost: float,
    ) -> None: ...
    def on_section_start(self, node_id: str, title: str) -> None: ...
    def on_section_end(self, node_id: str) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class RichCallbacks:
    """Rich-based implementation of PipelineCallbacks."""

    def on_phase_start(self, phase: str, description: str) -> None:
        console.rule(f"[bold blue]{phase}[/] - {description}")

    def on_phase_end(self, phase: str, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Phase {phase}: {status}")

    def on_batch_done(
        self, label: str, input_tokens: int, output_tokens: int, cost: float,
    ) -> None:
        console.print(
            f"  [dim]{label}:[/] {input_tokens} in / {output_tokens} out (${cost:.4f})"
        )

    def on_section_start(self, node_id: str, title: str) -> None:
        console.print(f"  [dim]Synthesizing section:[/] {node_id} {title}")

    def on_section_end(self, node_id: str) -> None:
        console.print(f"  [dim]Done:[/] {node_id}")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


class NullCallbacks:
    """Silent callbacks for library use and tests."""

    def on_phase_start(self, phase: str, description: str) -> None:
        pass

    def on_phase_end(self, phase: str, success: bool) -> None:
        pass

    def on_batch_done(
        self, label: str, input_tokens: int, output_tokens: int, cost: float,
    ) -> None:
        pass

    def on_section_start(self, node_id: str, title: str) -> None:
        pass

    def on_section_end(self, node_id: str) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


def print_run_summary(
    result: PipelineResult,
    *,
    pages: int,
    images: int,
    elapsed: float,
    output_path: str | None,
) -> None:
    """Print the end-of-run summary table."""
    table = Table(title="Run summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Total time", f"{elapsed:.1f}s")
    table.add_row("Pages", str(pages))
    table.add_row("Images", str(images))
    table.add_row("Descriptions", str(len(result.image_descriptions)))
    table.add_row("API cost", f"${result.total_cost:.4f}")
    table.add_row("Warnings", str(len(result.warnings)))
    table.add_row("Output", output_path or "-")
    console.print(table)
