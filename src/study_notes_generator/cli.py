"""CLI entry point using Hydra.

Usage examples:
  sng input_pdf=lectures/week3.pdf
  sng input_pdf=lectures/week3.pdf output_format=html synthesis_level=leaf
  sng mode=extract input_pdf=lectures/week3.pdf
  sng mode=render markdown_file=output/study-notes.md
  sng --config-dir . --config-name my_config input_pdf=week3.pdf
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.table import Table

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_service_fallbacks
from .logging_config import RichCallbacks, console, print_run_summary, setup_logging
from .models import OutputFormat, ProjectConfig

register_configs()

MARKDOWN_NAME = "study-notes.md"
HTML_NAME = "study-notes.html"

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``ProjectConfig``.

    CLI-only keys (``mode``, ``verbose``, etc.) are stripped before validation.
    Service credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    container.pop("hydra", None)
    config = ProjectConfig.model_validate(container)
    return apply_service_fallbacks(config)


def _require_pdf(config: ProjectConfig) -> Path:
    if not config.input_pdf:
        console.print("[red]input_pdf is required (e.g. input_pdf=lecture.pdf)[/]")
        sys.exit(1)
    path = Path(config.input_pdf)
    if not path.exists():
        console.print(f"[red]File not found: {path}[/]")
        sys.exit(1)
    return path


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    pdf_path = _require_pdf(config)

    if not config.service.api_key:
        console.print("[red]No API key: set OPENAI_API_KEY or service.api_key[/]")
        sys.exit(1)

    from .pipeline import Pipeline

    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    t0 = time.perf_counter()
    pipeline = Pipeline(config, callbacks=RichCallbacks())
    console.print(f"[bold]Input:[/] {pdf_path}")
    result = pipeline.run_pdf(pdf_path, config.images_dir)

    if not result.success or result.document is None:
        console.print("\n[bold red]Pipeline failed.[/]")
        for err in result.errors:
            console.print(f"  [red]{err}[/]")
        sys.exit(1)

    md_path = output_dir / MARKDOWN_NAME
    md_path.write_text(result.document, encoding="utf-8")
    out_path = md_path
    console.print(f"[green]Markdown saved to {md_path}[/]")

    if config.output_format == OutputFormat.HTML:
        from .tools.html_renderer import render_html

        title = result.content_tree.title if result.content_tree else config.project_name
        out_path = render_html(
            result.document, output_dir / HTML_NAME,
            images_dir=config.images_dir, title=title or config.project_name,
        )
        console.print(f"[green]HTML saved to {out_path}[/]")

    print_run_summary(
        result,
        pages=len(pipeline.pages),
        images=sum(len(p.images) for p in pipeline.pages),
        elapsed=time.perf_counter() - t0,
        output_path=str(out_path),
    )


def _extract_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    pdf_path = _require_pdf(config)

    from .tools.complexity_router import classify_image
    from .tools.deduplicator import deduplicate_pages
    from .tools.pdf_extractor import extract_pages

    pages, stats = deduplicate_pages(extract_pages(pdf_path), config)

    table = Table(title=f"{pdf_path.name}: {len(pages)} pages")
    table.add_column("Page", justify="right")
    table.add_column("Chars", justify="right")
    table.add_column("Images")
    for page in pages:
        images = ", ".join(
            f"{img.id} ({img.width}x{img.height}, {classify_image(img, config).value})"
            for img in page.images
        )
        table.add_row(str(page.number), str(len(page.text)), images or "-")
    console.print(table)
    console.print(
        f"  Kept {stats.kept} images, dropped {stats.duplicates} duplicates "
        f"and {stats.too_small} decorative"
    )


def _render_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    markdown_file = cfg.get("markdown_file")
    if not markdown_file:
        console.print("[red]markdown_file is required for render mode[/]")
        sys.exit(1)
    md_path = Path(markdown_file)
    if not md_path.exists():
        console.print(f"[red]File not found: {md_path}[/]")
        sys.exit(1)

    from .tools.html_renderer import render_html

    out = render_html(
        md_path.read_text(encoding="utf-8"),
        Path(config.output_dir) / HTML_NAME,
        images_dir=config.images_dir,
        title=config.project_name,
    )
    console.print(f"[green]HTML saved to {out}[/]")


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "extract": _extract_mode,
    "render": _render_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
