"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from dimrecon.adapters.metadata import load_rule_registry
from dimrecon.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, ensure_started
from dimrecon.config import ConfigurationError, get_engine_config
from dimrecon.domain.history import IntegrityViolation, check_integrity
from dimrecon.domain.model import BatchRun, RunStatus
from dimrecon.domain.pipeline import BatchReport, ReconciliationEngine
from dimrecon.domain.ports.unit_of_work import EngineUnitOfWork
from dimrecon.domain.rules import validate

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from concurrent.futures import Future
    from pathlib import Path

    from dimrecon.domain.history import IntegrityReport
    from dimrecon.domain.model import MergedEntity, SourceRecord
    from dimrecon.domain.rules import ConfigError, RuleRegistry

UnitOfWorkFactory = Callable[[], EngineUnitOfWork]


log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class EntityRunOutcome:
    """What happened to one entity type's batch inside ``run_batches``."""

    entity_type: str
    status: RunStatus
    report: BatchReport | None = None
    error: str | None = None


def load_registry(rules_path: Path | None = None) -> RuleRegistry:
    """Load the rule registry from ``rules_path`` or ``DIMRECON_RULES_PATH``."""

    path = get_engine_config(rules_path=rules_path).require_rules_path()
    return load_rule_registry(path)


def validate_rules(registry: RuleRegistry) -> list[ConfigError]:
    errors = validate(registry)
    for error in errors:
        log.warning("Invalid rule configuration: %s", error)
    return errors


def process_batch(
    entity_type: str,
    batch: Sequence[SourceRecord],
    batch_time: datetime,
    *,
    registry: RuleRegistry,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> BatchReport:
    """Reconcile one entity type's batch and commit it as a single transaction.

    Raises ``ConfigurationError`` before any write when the entity type's rules
    are unusable, and ``IntegrityViolation`` after commit when the resulting
    history breaks its invariants. Both outcomes are recorded as batch runs.
    """

    effective_uow = unit_of_work_factory or _default_unit_of_work(registry)
    pipeline = ReconciliationEngine.for_registry(registry)
    try:
        registry.require(entity_type)
    except ConfigurationError as exc:
        log.warning("Skipping %s batch: %s", entity_type, exc)
        _record_run(
            effective_uow,
            BatchRun(
                entity_type=entity_type,
                batch_id=_batch_label(batch),
                status=RunStatus.SKIPPED,
                processed_at=datetime.now(UTC),
                records_read=len(batch),
                error_message=str(exc),
            ),
        )
        raise

    log.info("Starting %s batch: records=%s, batch_time=%s", entity_type, len(batch), batch_time)
    with effective_uow() as uow:
        report = pipeline.run(entity_type, batch, batch_time, repositories=uow.repositories)
        integrity = report.apply.integrity
        violation = None if integrity is None or integrity.ok else IntegrityViolation(integrity)
        uow.repositories.batch_runs.add(
            _batch_run(
                report,
                status=RunStatus.SUCCESS if violation is None else RunStatus.FAILED,
                error_message=None if violation is None else str(violation),
            )
        )
        uow.commit()

    log.info(
        "Finished %s batch %s: crosswalk=%s, duplicates=%s, conflicts=%s, inserted=%s, "
        "expired=%s, unchanged=%s, rejected=%s",
        entity_type,
        report.batch_id,
        report.crosswalk_entries,
        report.duplicates,
        report.conflicts,
        report.apply.inserted,
        report.apply.expired,
        report.apply.unchanged,
        len(report.apply.rejected),
    )
    if violation is not None:
        raise violation
    return report


def run_batches(
    batches: Mapping[str, Sequence[SourceRecord]],
    batch_time: datetime,
    *,
    registry: RuleRegistry,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    max_workers: int | None = None,
) -> dict[str, EntityRunOutcome]:
    """Process each entity type's batch concurrently; one failure never stops the others."""

    if not batches:
        return {}
    effective_uow = unit_of_work_factory or _default_unit_of_work(registry)
    workers = max_workers or get_engine_config().max_workers
    outcomes: dict[str, EntityRunOutcome] = {}
    with ThreadPoolExecutor(
        max_workers=min(workers, len(batches)), thread_name_prefix="dimrecon"
    ) as pool:
        futures = {
            pool.submit(
                process_batch,
                entity_type,
                list(records),
                batch_time,
                registry=registry,
                unit_of_work_factory=effective_uow,
            ): entity_type
            for entity_type, records in batches.items()
        }
        for future in as_completed(futures):
            entity_type = futures[future]
            outcomes[entity_type] = _outcome(entity_type, future)
    return dict(sorted(outcomes.items()))


def quality_for(
    entity_type: str,
    canonical_id: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MergedEntity | None:
    """Return the latest merged entity, carrying its quality score and issues."""

    effective_uow = unit_of_work_factory or _default_unit_of_work()
    with effective_uow() as uow:
        return uow.repositories.merged_entities.get(entity_type, canonical_id)


def check_history(
    entity_type: str,
    *,
    registry: RuleRegistry,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> IntegrityReport:
    registry.require(entity_type)
    effective_uow = unit_of_work_factory or _default_unit_of_work(registry)
    with effective_uow() as uow:
        versions = uow.repositories.history.versions(entity_type)
    return check_integrity(entity_type, versions)


def _default_unit_of_work(registry: RuleRegistry | None = None) -> UnitOfWorkFactory:
    ensure_started(registry)
    return SqlAlchemyUnitOfWork


def _outcome(entity_type: str, future: Future[BatchReport]) -> EntityRunOutcome:
    try:
        report = future.result()
    except ConfigurationError as exc:
        return EntityRunOutcome(entity_type=entity_type, status=RunStatus.SKIPPED, error=str(exc))
    except IntegrityViolation as exc:
        log.error("History integrity check failed for %s: %s", entity_type, exc)  # noqa: TRY400
        return EntityRunOutcome(entity_type=entity_type, status=RunStatus.FAILED, error=str(exc))
    except Exception as exc:
        log.exception("Batch for %s failed", entity_type)
        return EntityRunOutcome(entity_type=entity_type, status=RunStatus.FAILED, error=str(exc))
    return EntityRunOutcome(entity_type=entity_type, status=RunStatus.SUCCESS, report=report)


def _record_run(unit_of_work_factory: UnitOfWorkFactory, run: BatchRun) -> None:
    with unit_of_work_factory() as uow:
        uow.repositories.batch_runs.add(run)
        uow.commit()


def _batch_run(report: BatchReport, *, status: RunStatus, error_message: str | None) -> BatchRun:
    return BatchRun(
        entity_type=report.entity_type,
        batch_id=report.batch_id or "",
        status=status,
        processed_at=datetime.now(UTC),
        records_read=report.records_read,
        crosswalk_entries=report.crosswalk_entries,
        conflicts=report.conflicts,
        duplicates=report.duplicates,
        inserted=report.apply.inserted,
        expired=report.apply.expired,
        unchanged=report.apply.unchanged,
        rejected=len(report.apply.rejected),
        error_message=error_message,
    )


def _batch_label(batch: Sequence[SourceRecord]) -> str:
    return min((record.batch_id for record in batch), default="")
