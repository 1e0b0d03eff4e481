from evm_conformance.report.aggregator import (
    GroupStats,
    SubGroupStats,
    aggregate,
    detailed_contract,
    percent,
    summary_contract,
)
from evm_conformance.report.render import render_detailed, render_summary, write_summary

__all__ = [
    "GroupStats",
    "SubGroupStats",
    "aggregate",
    "detailed_contract",
    "percent",
    "render_detailed",
    "render_summary",
    "summary_contract",
    "write_summary",
]
