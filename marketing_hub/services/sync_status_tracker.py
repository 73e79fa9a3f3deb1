"""
Sync Status Tracker

Per-(company, platform) sync state machine:

    idle -> syncing -> success | error
    success -> syncing, error -> syncing

Syncs of the same pair can overlap (a background refresh next to a cron
run), so a completion may land on a row another sync already finished.
That is logged and applied, last write wins. Completing a sync that never
started is rejected.

Rows are created lazily and mutated in place. classify_health() is view
logic only and never touches the database.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from marketing_hub.config import get_settings
from marketing_hub.exceptions import InvalidSyncTransition
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.models.sync_status import SyncStatus
from marketing_hub.services.metric_aggregator import PLATFORMS
from marketing_hub.utils.logger import log

IDLE = "idle"
SYNCING = "syncing"
SUCCESS = "success"
ERROR = "error"

ALLOWED_TRANSITIONS = {
    IDLE: {SYNCING},
    SYNCING: {SUCCESS, ERROR, SYNCING},
    SUCCESS: {SYNCING},
    ERROR: {SYNCING},
}

# Finished rows a second, overlapping sync may still complete
OVERLAPPING_COMPLETIONS = {
    SUCCESS: {SUCCESS, ERROR},
    ERROR: {SUCCESS, ERROR},
}

# Display classes
HEALTH_SYNCING = "syncing"
HEALTH_ERROR = "error"
HEALTH_OK = "ok"
HEALTH_STALE = "stale"
HEALTH_NEVER_SYNCED = "never_synced"

_MAX_ERROR_LENGTH = 2000


@dataclass
class SyncStatusRecord:
    company_id: str
    platform: str
    state: str = IDLE
    last_sync_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    consecutive_failures: int = 0
    data_start_date: Optional[date] = None
    data_end_date: Optional[date] = None

    def to_dict(self) -> Dict:
        return {
            "company_id": self.company_id,
            "platform": self.platform,
            "state": self.state,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "consecutive_failures": self.consecutive_failures,
            "data_start_date": self.data_start_date.isoformat() if self.data_start_date else None,
            "data_end_date": self.data_end_date.isoformat() if self.data_end_date else None,
        }


def _to_record(row: SyncStatus) -> SyncStatusRecord:
    return SyncStatusRecord(
        company_id=row.company_id,
        platform=row.platform,
        state=row.state or IDLE,
        last_sync_at=row.last_sync_at,
        last_success_at=row.last_success_at,
        last_error=row.last_error,
        last_error_at=row.last_error_at,
        consecutive_failures=row.consecutive_failures or 0,
        data_start_date=row.data_start_date,
        data_end_date=row.data_end_date,
    )


def classify_health(
    record: Optional[SyncStatusRecord],
    now: Optional[datetime] = None,
    ok_window: timedelta = timedelta(hours=48),
) -> str:
    """syncing | error | ok | stale | never_synced"""
    now = now or datetime.utcnow()
    if record is None:
        return HEALTH_NEVER_SYNCED
    if record.state == SYNCING:
        return HEALTH_SYNCING
    if record.state == ERROR:
        return HEALTH_ERROR
    if record.last_success_at is None:
        return HEALTH_NEVER_SYNCED
    if now - record.last_success_at <= ok_window:
        return HEALTH_OK
    return HEALTH_STALE


class SyncStatusTracker:
    """Reads and writes the sync_status table"""

    def __init__(self, session_factory=SessionLocal, clock: Callable[[], datetime] = datetime.utcnow):
        self.session_factory = session_factory
        self.clock = clock
        self.ok_window = timedelta(hours=get_settings().status_ok_window_hours)

    def _get_or_create(self, db, company_id: str, platform: str) -> SyncStatus:
        row = db.query(SyncStatus).filter(
            SyncStatus.company_id == company_id,
            SyncStatus.platform == platform,
        ).first()
        if row is None:
            row = SyncStatus(company_id=company_id, platform=platform, state=IDLE, consecutive_failures=0)
            db.add(row)
            db.flush()
        return row

    def _transition(self, row: SyncStatus, to_state: str) -> None:
        from_state = row.state or IDLE
        if to_state in OVERLAPPING_COMPLETIONS.get(from_state, set()):
            log.info(f"[SyncStatus] {row.company_id}/{row.platform} completed by overlapping syncs: "
                     f"{from_state} -> {to_state}")
        elif to_state not in ALLOWED_TRANSITIONS.get(from_state, set()):
            raise InvalidSyncTransition(row.company_id, row.platform, from_state, to_state)
        row.state = to_state

    def mark_syncing(self, company_id: str, platform: str) -> SyncStatusRecord:
        now = self.clock()
        with session_scope(self.session_factory) as db:
            row = self._get_or_create(db, company_id, platform)
            self._transition(row, SYNCING)
            row.last_sync_at = now
            row.updated_at = now
            return _to_record(row)

    def mark_success(
        self,
        company_id: str,
        platform: str,
        data_start: Optional[date] = None,
        data_end: Optional[date] = None,
    ) -> SyncStatusRecord:
        """Success; coverage grows to include [data_start, data_end]"""
        now = self.clock()
        with session_scope(self.session_factory) as db:
            row = self._get_or_create(db, company_id, platform)
            self._transition(row, SUCCESS)
            row.last_success_at = now
            row.consecutive_failures = 0
            row.last_error = None
            if data_start is not None:
                if row.data_start_date is None or data_start < row.data_start_date:
                    row.data_start_date = data_start
            if data_end is not None:
                if row.data_end_date is None or data_end > row.data_end_date:
                    row.data_end_date = data_end
            row.updated_at = now
            return _to_record(row)

    def mark_failure(self, company_id: str, platform: str, error: str) -> SyncStatusRecord:
        now = self.clock()
        with session_scope(self.session_factory) as db:
            row = self._get_or_create(db, company_id, platform)
            self._transition(row, ERROR)
            row.last_error = (error or "Unknown error")[:_MAX_ERROR_LENGTH]
            row.last_error_at = now
            row.consecutive_failures = (row.consecutive_failures or 0) + 1
            row.updated_at = now
            record = _to_record(row)

        if record.consecutive_failures >= 3:
            log.warning(f"[SyncStatus] {company_id}/{platform} has failed "
                        f"{record.consecutive_failures} times in a row: {record.last_error}")
        return record

    def get(self, company_id: str, platform: str) -> Optional[SyncStatusRecord]:
        with session_scope(self.session_factory) as db:
            row = db.query(SyncStatus).filter(
                SyncStatus.company_id == company_id,
                SyncStatus.platform == platform,
            ).first()
            return _to_record(row) if row is not None else None

    def list_statuses(self, company_ids: Optional[Iterable[str]] = None) -> List[SyncStatusRecord]:
        with session_scope(self.session_factory) as db:
            query = db.query(SyncStatus)
            if company_ids is not None:
                query = query.filter(SyncStatus.company_id.in_(list(company_ids)))
            rows = query.order_by(SyncStatus.company_id.asc(), SyncStatus.platform.asc()).all()
            return [_to_record(r) for r in rows]

    def ensure_rows(self, company_ids: Iterable[str], platforms: Iterable[str] = PLATFORMS) -> int:
        """Create idle rows for any missing (company, platform). Returns rows created."""
        platforms = list(platforms)
        created = 0
        with session_scope(self.session_factory) as db:
            existing = {
                (r.company_id, r.platform)
                for r in db.query(SyncStatus.company_id, SyncStatus.platform).all()
            }
            for company_id in company_ids:
                for platform in platforms:
                    if (company_id, platform) in existing:
                        continue
                    db.add(SyncStatus(company_id=company_id, platform=platform, state=IDLE, consecutive_failures=0))
                    existing.add((company_id, platform))
                    created += 1
        return created

    def classify(self, record: Optional[SyncStatusRecord], now: Optional[datetime] = None) -> str:
        return classify_health(record, now or self.clock(), self.ok_window)

    def oldest_success(self, company_id: str) -> Optional[datetime]:
        """Least recent last_success_at across the company's platforms (None if any never succeeded)"""
        records = self.list_statuses([company_id])
        if not records:
            return None
        successes = [r.last_success_at for r in records]
        if any(s is None for s in successes):
            return None
        return min(successes)
