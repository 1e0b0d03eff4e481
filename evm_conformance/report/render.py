"""Markdown rendering of the report contracts."""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, StrictUndefined

logger = logging.getLogger(__name__)

SUMMARY_FILE_NAME = "summary.md"

_env = Environment(
    loader=PackageLoader("evm_conformance", "report/templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
    autoescape=False,
)


def _fmt_percent(value: float) -> str:
    return f"{value:.2f}%"


def _fmt_notes(test: dict[str, Any]) -> str:
    notes = []
    if test.get("policy_altered"):
        notes.append("gas limit clamped")
    if test.get("carried_forward"):
        notes.append("carried forward")
    if test.get("diagnostic"):
        # Keep multi-line engine output inside one table cell.
        notes.append(" ".join(test["diagnostic"].split()).replace("|", "\\|"))
    return "; ".join(notes)


_env.filters["pct"] = _fmt_percent
_env.filters["notes"] = _fmt_notes


def render_summary(contract: dict[str, Any]) -> str:
    """One table per group with a row per sub-group."""
    return _env.get_template("summary.md.j2").render(groups=contract)


def render_detailed(detailed: dict[str, Any], filter_str: str | None = None) -> str:
    """A single table of every test, titled with the path filter if any."""
    return _env.get_template("detailed.md.j2").render(
        report=detailed,
        filter_str=f"({filter_str})" if filter_str else "",
    )


def write_summary(contract: dict[str, Any], report_dir: str | Path = "reports") -> Path:
    """Render the summary into `<report_dir>/summary.md`."""
    report_dir = Path(report_dir)
    report_dir.mkdir(parents=True, exist_ok=True)
    path = report_dir / SUMMARY_FILE_NAME
    path.write_text(render_summary(contract))
    logger.info(f"Wrote summary report to {path}")
    return path
