"""Render study-notes markdown to a standalone HTML file.

Wraps ``pandoc -f markdown -t html``. Local images are inlined as base64 data
URIs so the HTML is self-contained, and mermaid code blocks are turned into
``<div class="mermaid">`` elements rendered client-side by mermaid.js.
Falls back to an escaped ``<pre>`` body if pandoc is unavailable.
"""

from __future__ import annotations

import base64
import html
import logging
import re
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(([^)\s]+)\)")

# pandoc renders ```mermaid fences as <pre class="mermaid"><code>...</code></pre>
_MERMAID_PRE_RE = re.compile(
    r'<pre class="mermaid"><code>(.*?)</code></pre>',
    re.DOTALL,
)

_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
  body {{ font-family: Georgia, "Times New Roman", serif; max-width: 46em;
         margin: 2em auto; padding: 0 1em; line-height: 1.6; color: #222; }}
  h1, h2, h3 {{ font-family: "Helvetica Neue", Arial, sans-serif; }}
  h2 {{ border-bottom: 1px solid #ddd; padding-bottom: .2em; margin-top: 2em; }}
  figure {{ margin: 1em 0; text-align: center; }}
  img {{ max-width: 100%; }}
  .mermaid {{ text-align: center; margin: 1.5em 0; }}
  code {{ background: #f5f5f5; padding: 0 .2em; }}
</style>
<script src="https://cdn.jsdelivr.net/npm/mermaid/dist/mermaid.min.js"></script>
<script>mermaid.initialize({{ startOnLoad: true }});</script>
</head>
<body>
{body}
</body>
</html>
"""


def pandoc_available() -> bool:
    """Check if pandoc is on PATH."""
    return shutil.which("pandoc") is not None


def inline_images(markdown: str, images_dir: str | Path) -> str:
    """Replace ``![alt](name)`` references to files in *images_dir* with data URIs.

    References to files that do not exist are left untouched.
    """
    base_dir = Path(images_dir)

    def _replace(m: re.Match) -> str:
        alt, src = m.group(1), m.group(2)
        if src.startswith("data:"):
            return m.group(0)
        path = base_dir / src
        if not path.is_file():
            return m.group(0)
        ext = path.suffix.lstrip(".").lower() or "png"
        if ext == "jpg":
            ext = "jpeg"
        b64 = base64.b64encode(path.read_bytes()).decode("ascii")
        return f"![{alt}](data:image/{ext};base64,{b64})"

    return _IMAGE_RE.sub(_replace, markdown)


def mermaid_to_divs(body_html: str) -> str:
    return _MERMAID_PRE_RE.sub(r'<div class="mermaid">\1</div>', body_html)


def markdown_to_html_body(markdown: str) -> str:
    """Convert markdown to an HTML fragment via pandoc stdin."""
    if not pandoc_available():
        logger.warning("pandoc not found, embedding raw markdown as fallback")
        return f"<pre>{html.escape(markdown)}</pre>"

    result = subprocess.run(
        ["pandoc", "-f", "markdown-smart", "-t", "html"],
        input=markdown,
        capture_output=True,
        text=True,
        timeout=60,
    )
    if result.returncode != 0:
        logger.error("Pandoc failed: %s", result.stderr)
        raise RuntimeError(f"Pandoc conversion failed:\n{result.stderr}")
    return mermaid_to_divs(result.stdout)


def render_html(
    markdown: str,
    output_path: str | Path,
    *,
    images_dir: str | Path,
    title: str = "Study Notes",
) -> Path:
    """Write a self-contained HTML rendering of *markdown* to *output_path*."""
    body = markdown_to_html_body(inline_images(markdown, images_dir))
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(_TEMPLATE.format(title=html.escape(title), body=body), encoding="utf-8")
    logger.info("HTML saved to %s", out)
    return out
