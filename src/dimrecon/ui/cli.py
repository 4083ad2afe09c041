# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from dimrecon.adapters.batches import BatchFileError, group_by_entity_type, read_batch_file
from dimrecon.app import (
    check_history,
    load_registry,
    quality_for,
    run_batches,
    validate_rules,
)
from dimrecon.config import ConfigurationError, configure_logging
from dimrecon.domain.model import RunStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from dimrecon.domain.rules import RuleRegistry

log = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reconcile multi-source records into dimension history"
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=None,
        help="Path to the TOML rules document (defaults to DIMRECON_RULES_PATH)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("validate", help="Validate the rules document")

    run = subparsers.add_parser("run", help="Process batch files")
    run.add_argument(
        "--batch",
        type=Path,
        action="append",
        required=True,
        help="JSON Lines batch file; repeat for several files",
    )
    run.add_argument(
        "--batch-time",
        type=str,
        help="ISO-8601 effective time of the batch (defaults to now, UTC)",
    )
    run.add_argument(
        "--entity-type",
        type=str,
        help="Only process records of this entity type",
    )
    run.add_argument(
        "--max-workers",
        type=int,
        help="Entity types processed in parallel (defaults to DIMRECON_MAX_WORKERS)",
    )

    integrity = subparsers.add_parser("integrity", help="Check dimension history invariants")
    integrity.add_argument("--entity-type", type=str, required=True)

    quality = subparsers.add_parser("quality", help="Show the quality of a merged entity")
    quality.add_argument("--entity-type", type=str, required=True)
    quality.add_argument("--canonical-id", type=str, required=True)

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _validate(registry: RuleRegistry) -> None:
    errors = validate_rules(registry)
    for error in errors:
        print(error, file=sys.stderr)
    if errors:
        sys.exit(EXIT_USAGE)
    print(f"Rules OK: {len(registry.entity_types)} entity type(s)")


def _run(registry: RuleRegistry, args: argparse.Namespace) -> None:
    batch_time = _parse_iso_datetime(args.batch_time) if args.batch_time else _utcnow()
    records = [record for path in args.batch for record in read_batch_file(path)]
    batches = group_by_entity_type(records)
    if args.entity_type is not None:
        batches = {args.entity_type: batches.get(args.entity_type, [])}

    outcomes = run_batches(batches, batch_time, registry=registry, max_workers=args.max_workers)
    for entity_type, outcome in outcomes.items():
        if outcome.report is not None:
            applied = outcome.report.apply
            print(
                f"{entity_type}: {outcome.status} inserted={applied.inserted} "
                f"expired={applied.expired} unchanged={applied.unchanged} "
                f"rejected={len(applied.rejected)} conflicts={outcome.report.conflicts}"
            )
        else:
            print(f"{entity_type}: {outcome.status} {outcome.error}", file=sys.stderr)
    if any(outcome.status is not RunStatus.SUCCESS for outcome in outcomes.values()):
        sys.exit(EXIT_FAILURE)


def _integrity(registry: RuleRegistry, args: argparse.Namespace) -> None:
    report = check_history(args.entity_type, registry=registry)
    for violation in report.violations:
        print(violation, file=sys.stderr)
    if not report.ok:
        sys.exit(EXIT_FAILURE)
    print(f"{args.entity_type}: {report.checked_keys} business key(s) OK")


def _quality(args: argparse.Namespace) -> None:
    entity = quality_for(args.entity_type, args.canonical_id)
    if entity is None:
        print(f"No merged {args.entity_type} with id {args.canonical_id}", file=sys.stderr)
        sys.exit(EXIT_FAILURE)
    print(f"{entity.canonical_id}: quality={entity.quality_score:g}")
    for issue in entity.quality_issues:
        print(f"  {issue}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        if parsed_args.command == "quality":
            _quality(parsed_args)
            return
        registry = load_registry(parsed_args.rules)
        if parsed_args.command == "validate":
            _validate(registry)
        elif parsed_args.command == "run":
            _run(registry, parsed_args)
        elif parsed_args.command == "integrity":
            _integrity(registry, parsed_args)
    except (ConfigurationError, BatchFileError, ValueError) as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(EXIT_USAGE)
    except Exception:
        log.exception("Fatal error")
        sys.exit(EXIT_FAILURE)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
