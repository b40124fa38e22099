"""Command-line entry point for the residual audit pipeline"""

import argparse
import json
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from residual_audit.constants import IssueStatus
from residual_audit.db.sqlite_store import SQLiteStore
from residual_audit.orchestrator.pipeline import ResidualsPipeline
from residual_audit.tools.file_reader import read_tabular
from residual_audit.utils.config_loader import load_config
from residual_audit.utils.errors import AuditRunError, ResidualAuditError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DB_PATH = "residuals.db"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="residual-audit",
        description="Residual revenue intake, split resolution and audit"
    )
    parser.add_argument("--db", default=None, help="SQLite database path (env RESIDUALS_DB_PATH)")
    parser.add_argument("--config", default=None, help="Rules YAML path (env RESIDUALS_CONFIG_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Normalize, validate and store a processor report")
    upload.add_argument("file", help="CSV or XLSX processor report")
    upload.add_argument("--processor", required=True, help="Processor name")
    upload.add_argument("--month", required=True, help="Reporting month (YYYY-MM)")
    upload.add_argument("--force", action="store_true", help="Store even if validation fails")

    roster = sub.add_parser("roster", help="Import the merchant roster (lead sheet)")
    roster.add_argument("file", help="CSV or XLSX lead sheet")

    resolve = sub.add_parser("resolve", help="Resolve residual splits for a month")
    resolve.add_argument("--month", required=True)
    resolve.add_argument("--merchant", action="append", dest="merchants", help="Restrict to MID (repeatable)")

    audit = sub.add_parser("audit", help="Run a reconciliation audit for a month")
    audit.add_argument("--month", required=True)

    resolve_issue = sub.add_parser("resolve-issue", help="Change the review status of an audit issue")
    resolve_issue.add_argument("issue_id")
    resolve_issue.add_argument(
        "--status",
        default=IssueStatus.RESOLVED.value,
        choices=[s.value for s in IssueStatus if s != IssueStatus.OPEN]
    )
    resolve_issue.add_argument("--by", dest="resolved_by", default=None, help="Reviewer name")

    metrics = sub.add_parser("metrics", help="Monthly portfolio metrics")
    metrics.add_argument("--start", required=True, help="First month (YYYY-MM)")
    metrics.add_argument("--end", required=True, help="Last month (YYYY-MM)")
    metrics.add_argument("--processor", default=None)
    metrics.add_argument("--top", type=int, default=None, help="Top-N for revenue concentration")

    return parser


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_command(args: argparse.Namespace, pipeline: ResidualsPipeline) -> int:
    """Dispatch a parsed command; returns the process exit code"""
    if args.command == "upload":
        result = pipeline.intake_upload(
            args.processor, args.month, read_tabular(args.file), force=args.force
        )
        print(result.validation.render_report())
        return 0 if result.accepted else 1

    if args.command == "roster":
        result = pipeline.import_merchant_roster(read_tabular(args.file))
        _emit({'created': result.created, 'updated': result.updated, 'skipped_rows': len(result.errors)})
        return 0

    if args.command == "resolve":
        assignments = pipeline.resolve_assignments(args.month, args.merchants)
        _emit([a.model_dump(mode="json") for a in assignments])
        return 0

    if args.command == "audit":
        result = pipeline.run_audit(args.month)
        _emit({
            'run_id': result.run_id,
            'month': result.month,
            'status': result.status.value,
            'counts': {t.value: c for t, c in result.counts.items()}
        })
        return 0

    if args.command == "resolve-issue":
        issue = pipeline.resolve_issue(args.issue_id, IssueStatus(args.status), args.resolved_by)
        _emit(issue.model_dump(mode="json"))
        return 0

    if args.command == "metrics":
        months = pipeline.query_metrics(args.start, args.end, processor=args.processor)
        concentration = pipeline.revenue_concentration(month=args.end, top_n=args.top)
        _emit({
            'months': [m.model_dump(mode="json") for m in months],
            'concentration': concentration.model_dump(mode="json")
        })
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    load_dotenv()
    args = build_parser().parse_args(argv)

    db_path = args.db or os.getenv("RESIDUALS_DB_PATH", DEFAULT_DB_PATH)
    store = None
    try:
        store = SQLiteStore(db_path)
        pipeline = ResidualsPipeline(store=store, config=load_config(args.config))
        return run_command(args, pipeline)
    except AuditRunError as e:
        logger.error(f"Audit run failed: {e}", run_id=e.run_id)
        return 2
    except ResidualAuditError as e:
        logger.error(f"Command {args.command} failed: {e}")
        return 1
    finally:
        if store is not None:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
