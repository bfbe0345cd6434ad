from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import TYPE_CHECKING, Any

from logbook.core.config import Settings
from logbook.schemas.records import (
    GENERATOR_RECORD_TYPES,
    MACHINE_RECORD_TYPES,
    METER_RECORD_TYPES,
    LogRecord,
)
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.ledger import LocalLedger
from logbook.services.remote_rows import (
    GENERATOR_KIND,
    MACHINE_KIND,
    METER_KIND,
    ROW_PARSERS,
    RemoteRowError,
    build_generator_rows,
    build_machine_rows,
    build_meter_rows,
)
from logbook.services.sheet_client import BridgeNotConfiguredError, SheetBridgeClient

if TYPE_CHECKING:
    from logbook.services.auth import UserDirectory

PHASE_IDLE = "IDLE"
PHASE_PUSHING = "PUSHING"
PHASE_CONFIG_REFRESH = "CONFIG_REFRESH"
PHASE_PULLING = "PULLING"


class SyncInProgressError(RuntimeError):
    pass


@dataclass
class PushResult:
    succeeded_ids: set[str] = field(default_factory=set)
    failed_batches: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PullResult:
    records: list[LogRecord] = field(default_factory=list)
    added: int = 0
    skipped_rows: list[dict[str, Any]] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class SyncCycleReport:
    trigger: str
    status: str = "ok"
    started_at: str | None = None
    finished_at: str | None = None
    pushed_ids: list[str] = field(default_factory=list)
    failed_batches: list[dict[str, Any]] = field(default_factory=list)
    pulled_count: int = 0
    skipped_rows: list[dict[str, Any]] = field(default_factory=list)
    phase_errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncOrchestrator:
    def __init__(
        self,
        *,
        settings: Settings,
        ledger: LocalLedger,
        catalog: EntityCatalog,
        sheet_client: SheetBridgeClient,
        users: UserDirectory | None = None,
    ) -> None:
        self._settings = settings
        self._ledger = ledger
        self._catalog = catalog
        self._sheet_client = sheet_client
        self._users = users
        self._logger = logging.getLogger("logbook.sync")
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="logbook-sync")

        self._cycle_lock = Lock()
        self._state_lock = Lock()
        self._phase = PHASE_IDLE
        self._last_trigger: str | None = None
        self._last_error: str | None = None
        self._last_report: SyncCycleReport | None = None
        self._future: Future[SyncCycleReport] | None = None
        self._immediate_ids: set[str] = set()

    def start(self) -> None:
        if not self._settings.sync_on_startup:
            return
        if self._users is not None and self._users.current_user() is None:
            self._logger.info("startup sync skipped: no user logged in")
            return
        try:
            self.request_full_sync(trigger="startup")
        except SyncInProgressError:
            pass

    def stop(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # --- push -------------------------------------------------------------

    def push_pending(self, records: Sequence[LogRecord] | None = None) -> set[str]:
        """Push pending records per kind and return the ids of batches that succeeded."""

        return self._push(records).succeeded_ids

    def _push(self, records: Sequence[LogRecord] | None = None) -> PushResult:
        if records is None:
            with self._state_lock:
                in_flight = set(self._immediate_ids)
            records = [record for record in self._ledger.pending() if record.id not in in_flight]
        pending = [record for record in records if not record.synced_to_sheet]
        result = PushResult()
        if not pending:
            return result

        tz_name = self._settings.display_timezone
        batches = (
            (
                MACHINE_KIND,
                MACHINE_RECORD_TYPES,
                lambda: {item.id: item.name for item in self._catalog.get_machines()},
                build_machine_rows,
                self._sheet_client.sync_machine_logs,
            ),
            (
                METER_KIND,
                METER_RECORD_TYPES,
                lambda: {item.id: item.name for item in self._catalog.get_meters()},
                build_meter_rows,
                self._sheet_client.sync_meter_logs,
            ),
            (
                GENERATOR_KIND,
                GENERATOR_RECORD_TYPES,
                lambda: {item.id: item.name for item in self._catalog.get_generators()},
                build_generator_rows,
                self._sheet_client.sync_generator_logs,
            ),
        )
        for kind, record_types, names_for, build_rows, send in batches:
            batch = [record for record in pending if record.record_type in record_types]
            if not batch:
                continue
            try:
                rows = build_rows(batch, names=names_for(), tz_name=tz_name)
                send(rows)
            except Exception as exc:
                if isinstance(exc, BridgeNotConfiguredError):
                    self._logger.info("push skipped kind=%s: %s", kind, exc)
                else:
                    self._logger.exception("push failed kind=%s count=%d", kind, len(batch))
                result.failed_batches.append(
                    {"kind": kind, "count": len(batch), "error": str(exc)}
                )
                continue
            result.succeeded_ids.update(record.id for record in batch)
            self._logger.info("pushed kind=%s count=%d", kind, len(batch))
        return result

    # --- pull -------------------------------------------------------------

    def pull_all(self) -> list[LogRecord]:
        """Fetch every kind from the bridge and merge unseen records; returns the merged ledger."""

        return self._pull().records

    def _pull(self) -> PullResult:
        result = PullResult()
        tz_name = self._settings.display_timezone
        sources = (
            (
                MACHINE_KIND,
                self._sheet_client.get_machine_logs,
                self._catalog.resolve_machine_id,
                self._settings.sheet_pull_limit_machine_logs,
            ),
            (
                METER_KIND,
                self._sheet_client.get_meter_logs,
                self._catalog.resolve_meter_id,
                self._settings.sheet_pull_limit_meter_logs,
            ),
            (
                GENERATOR_KIND,
                self._sheet_client.get_generator_logs,
                self._catalog.resolve_generator_id,
                self._settings.sheet_pull_limit_generator_logs,
            ),
        )

        fetched: list[LogRecord] = []
        for kind, fetch, lookup, limit in sources:
            try:
                rows = fetch()
            except Exception as exc:
                if isinstance(exc, BridgeNotConfiguredError):
                    self._logger.info("pull skipped kind=%s: %s", kind, exc)
                else:
                    self._logger.exception("pull failed kind=%s", kind)
                result.errors[kind] = str(exc)
                continue

            parse = ROW_PARSERS[kind]
            for row in rows[-limit:]:
                try:
                    fetched.append(parse(row, lookup=lookup, tz_name=tz_name))
                except RemoteRowError as exc:
                    result.skipped_rows.append(
                        {"kind": kind, "reason": exc.reason, "row_id": exc.row_id}
                    )

        if result.skipped_rows:
            self._logger.warning("pull skipped %d malformed rows", len(result.skipped_rows))
        result.records, result.added = self._ledger.merge_remote(fetched)
        self._logger.info(
            "pull merged fetched=%d added=%d total=%d",
            len(fetched),
            result.added,
            len(result.records),
        )
        return result

    # --- full cycle -------------------------------------------------------

    def perform_full_sync(self, trigger: str = "manual") -> SyncCycleReport:
        report = SyncCycleReport(trigger=trigger)
        if not self._cycle_lock.acquire(blocking=False):
            self._logger.info("sync cycle already in flight; trigger=%s ignored", trigger)
            report.status = "skipped"
            return report

        try:
            report.started_at = _now_iso()
            with self._state_lock:
                self._last_trigger = trigger

            self._set_phase(PHASE_PUSHING)
            try:
                push = self._push()
                report.failed_batches = push.failed_batches
                if push.succeeded_ids:
                    self._ledger.mark_synced(push.succeeded_ids)
                    report.pushed_ids = sorted(push.succeeded_ids)
            except Exception as exc:
                self._logger.exception("push phase failed trigger=%s", trigger)
                report.phase_errors[PHASE_PUSHING] = str(exc)

            self._set_phase(PHASE_CONFIG_REFRESH)
            try:
                summary = self._catalog.refresh_from_remote(self._sheet_client)
                if self._users is not None:
                    self._users.sync_from_cloud()
                if summary.get("errors"):
                    report.phase_errors[PHASE_CONFIG_REFRESH] = "; ".join(
                        f"{name}: {error}" for name, error in sorted(summary["errors"].items())
                    )
            except Exception as exc:
                self._logger.exception("config refresh phase failed trigger=%s", trigger)
                report.phase_errors[PHASE_CONFIG_REFRESH] = str(exc)

            self._set_phase(PHASE_PULLING)
            try:
                pull = self._pull()
                report.pulled_count = pull.added
                report.skipped_rows = pull.skipped_rows
                if pull.errors:
                    report.phase_errors[PHASE_PULLING] = "; ".join(
                        f"{kind}: {error}" for kind, error in sorted(pull.errors.items())
                    )
            except Exception as exc:
                self._logger.exception("pull phase failed trigger=%s", trigger)
                report.phase_errors[PHASE_PULLING] = str(exc)

            if report.failed_batches or report.phase_errors:
                report.status = "partial"
            report.finished_at = _now_iso()
            self._logger.info(
                "sync cycle finished trigger=%s status=%s pushed=%d pulled=%d skipped_rows=%d",
                trigger,
                report.status,
                len(report.pushed_ids),
                report.pulled_count,
                len(report.skipped_rows),
            )
            with self._state_lock:
                self._last_report = report
                self._last_error = (
                    "; ".join(f"{phase}: {error}" for phase, error in report.phase_errors.items())
                    or None
                )
            return report
        finally:
            self._set_phase(PHASE_IDLE)
            self._cycle_lock.release()

    def record_and_push(self, record: LogRecord) -> LogRecord:
        """Store a freshly created record and try to push it right away."""

        # Registered before the append so a concurrent cycle never batches it too.
        with self._state_lock:
            self._immediate_ids.add(record.id)
        try:
            self._ledger.append(record)
            pushed = self._push([record]).succeeded_ids
            if record.id in pushed:
                self._ledger.mark_synced({record.id})
        except Exception:
            self._logger.exception("immediate push failed id=%s; will retry on next cycle", record.id)
        finally:
            with self._state_lock:
                self._immediate_ids.discard(record.id)
        return self._ledger.get(record.id) or record

    def request_full_sync(self, trigger: str = "manual") -> None:
        with self._state_lock:
            future = self._future
            if (future is not None and not future.done()) or self._cycle_lock.locked():
                raise SyncInProgressError("A sync cycle is already in progress")
            self._future = self._executor.submit(self._worker, trigger)

    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def get_status_snapshot(self) -> dict[str, Any]:
        pending_count = len(self._ledger.pending())
        with self._state_lock:
            return {
                "phase": self._phase,
                "running": self._cycle_lock.locked(),
                "pending_count": pending_count,
                "last_trigger": self._last_trigger,
                "last_error": self._last_error,
                "last_report": self._last_report.to_dict() if self._last_report else None,
            }

    def _worker(self, trigger: str) -> SyncCycleReport:
        try:
            return self.perform_full_sync(trigger=trigger)
        except Exception as exc:
            self._logger.exception("background sync failed trigger=%s", trigger)
            with self._state_lock:
                self._last_error = str(exc)
            return SyncCycleReport(trigger=trigger, status="partial", phase_errors={"cycle": str(exc)})

    def _set_phase(self, phase: str) -> None:
        with self._state_lock:
            self._phase = phase


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
