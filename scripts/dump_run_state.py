#!/usr/bin/env python3
"""Dump the run history to a JSON file.

Exports the latest RunRecord of every variant and the bookkeeping of recent
runs, for inspection or for comparing two history databases.

Usage:
    # Dump everything
    python scripts/dump_run_state.py --db run_history.db --output state.json

    # Only failing variants, pretty-printed to stdout
    python scripts/dump_run_state.py --outcome failed --pretty

    # One run's metadata and the records it wrote
    python scripts/dump_run_state.py --run-id run_abc123def456

    # Just the counts
    python scripts/dump_run_state.py --summary-only
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from evm_conformance.db.models import OutcomeKind, TestRunRecord
from evm_conformance.db.repo import Repository


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="Dump run history (variant outcomes and runs) to JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--db",
        type=str,
        default="run_history.db",
        help="Database path (default: run_history.db)",
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output JSON file (default: stdout)",
    )

    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Only records written by this run",
    )

    parser.add_argument(
        "--outcome",
        type=str,
        choices=[o.value for o in OutcomeKind] + ["all"],
        default="all",
        help="Filter records by outcome (default: all)",
    )

    parser.add_argument(
        "--runs",
        type=int,
        default=20,
        help="Number of recent runs to include (default: 20)",
    )

    parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only output counts",
    )

    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print JSON output",
    )

    return parser


def dump_run(run: TestRunRecord) -> dict:
    entry = {
        "run_id": run.run_id,
        "mode": run.mode,
        "status": run.status,
        "selected": run.selected,
        "executed": run.executed,
        "carried_forward": run.carried_forward,
        "passed": run.passed,
        "failed": run.failed,
        "ignored": run.ignored,
        "started_at": run.started_at,
        "completed_at": run.completed_at,
    }
    if run.config_json:
        try:
            entry["config"] = json.loads(run.config_json)
        except json.JSONDecodeError:
            pass
    return entry


def main():
    parser = create_parser()
    args = parser.parse_args()

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"Error: Database not found: {args.db}", file=sys.stderr)
        sys.exit(1)

    print(f"Reading from {args.db}...", file=sys.stderr)

    with Repository(db_path) as repo:
        outcome = None if args.outcome == "all" else OutcomeKind(args.outcome)
        records = repo.list_run_records(outcome)
        if args.run_id:
            records = [r for r in records if r.run_id == args.run_id]
            run = repo.get_test_run(args.run_id)
            runs = [run] if run else []
        else:
            runs = repo.list_test_runs(limit=args.runs)
        counts = repo.count_run_records_by_outcome()

    output = {
        "summary": {
            "records": sum(counts.values()),
            "by_outcome": counts,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "runs": [dump_run(r) for r in runs],
    }
    if not args.summary_only:
        output["records"] = [r.to_dict() for r in records]

    indent = 2 if args.pretty else None
    text = json.dumps(output, indent=indent)

    if args.output:
        Path(args.output).write_text(text + "\n")
        print(f"Wrote {len(records)} records to {args.output}", file=sys.stderr)
    else:
        print(text)


if __name__ == "__main__":
    main()
