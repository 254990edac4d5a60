"""
Markdown summary — resource counts per type and per subscription, rendered via Jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape


TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "inventory_summary.md.j2"


def export_markdown(run: Any, filepath: Path, redacted: bool = True) -> Path:
    """Write the inventory summary report."""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    content = render_summary(run, redacted=redacted)

    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)

    return filepath


def render_summary(run: Any, redacted: bool = True) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template(TEMPLATE_NAME)
    return template.render(
        run_id=run.run_id,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        summary=run.summary(),
        redacted=redacted,
    )
