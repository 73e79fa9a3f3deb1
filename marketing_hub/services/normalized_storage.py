"""
Normalized Storage

Durable per-day metric rows and period snapshots. Read by the cache
resolver (cheapest tier), written by the incremental analytics sync.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.models.daily_metrics import DAILY_MODELS, GAChannelDaily
from marketing_hub.models.snapshots import PeriodSnapshot
from marketing_hub.utils.dates import to_date, iso
from marketing_hub.utils.logger import log

_SKIP_COLUMNS = {"id", "company_id", "synced_at"}


def _row_to_dict(row) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        if column.name in _SKIP_COLUMNS:
            continue
        value = getattr(row, column.name)
        if isinstance(value, date):
            value = iso(value)
        data[column.name] = value
    return data


class NormalizedStorage:
    """Daily rows and snapshots, keyed by company"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_daily_rows(self, company_id: str, platform: str, start: date, end: date) -> List[Dict[str, Any]]:
        model = DAILY_MODELS[platform]
        with session_scope(self.session_factory) as db:
            rows = db.query(model).filter(
                model.company_id == company_id,
                model.date >= start,
                model.date <= end,
            ).order_by(model.date.asc()).all()
            return [_row_to_dict(r) for r in rows]

    def query_channel_rows(self, company_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        with session_scope(self.session_factory) as db:
            rows = db.query(GAChannelDaily).filter(
                GAChannelDaily.company_id == company_id,
                GAChannelDaily.date >= start,
                GAChannelDaily.date <= end,
            ).order_by(GAChannelDaily.date.asc(), GAChannelDaily.channel.asc()).all()
            return [_row_to_dict(r) for r in rows]

    def query_snapshot(self, company_id: str, platform: str, start: date, end: date) -> Optional[Dict[str, Any]]:
        """
        Snapshot payload for exactly [start, end], else the most recent
        snapshot for the platform, else None.
        """
        with session_scope(self.session_factory) as db:
            snapshot = db.query(PeriodSnapshot).filter(
                PeriodSnapshot.company_id == company_id,
                PeriodSnapshot.platform == platform,
                PeriodSnapshot.period_start == start,
                PeriodSnapshot.period_end == end,
            ).first()

            if snapshot is None:
                snapshot = db.query(PeriodSnapshot).filter(
                    PeriodSnapshot.company_id == company_id,
                    PeriodSnapshot.platform == platform,
                ).order_by(PeriodSnapshot.snapshot_date.desc(), PeriodSnapshot.id.desc()).first()

            return dict(snapshot.payload) if snapshot is not None else None

    def latest_data_date(self, company_id: str, platform: str) -> Optional[date]:
        model = DAILY_MODELS[platform]
        with session_scope(self.session_factory) as db:
            row = db.query(model.date).filter(
                model.company_id == company_id
            ).order_by(model.date.desc()).first()
            return row[0] if row else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_daily_rows(self, company_id: str, platform: str, rows: List[Dict[str, Any]]) -> int:
        """Insert or overwrite one row per (company, date). Returns rows written."""
        if not rows:
            return 0

        model = DAILY_MODELS[platform]
        columns = {c.name for c in model.__table__.columns} - _SKIP_COLUMNS - {"date"}
        written = 0

        with session_scope(self.session_factory) as db:
            for raw in rows:
                try:
                    day = to_date(raw.get("date"))
                except ValueError:
                    log.warning(f"[Storage] Skipping {platform} row without a valid date for {company_id}: {raw.get('date')!r}")
                    continue

                existing = db.query(model).filter(
                    model.company_id == company_id,
                    model.date == day,
                ).first()
                if existing is None:
                    existing = model(company_id=company_id, date=day)
                    db.add(existing)

                for name in columns:
                    if name in raw:
                        setattr(existing, name, raw[name])
                existing.synced_at = datetime.utcnow()
                written += 1

        return written

    def upsert_channel_rows(self, company_id: str, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0

        written = 0
        with session_scope(self.session_factory) as db:
            for raw in rows:
                channel = raw.get("channel")
                try:
                    day = to_date(raw.get("date"))
                except ValueError:
                    continue
                if not channel:
                    continue

                existing = db.query(GAChannelDaily).filter(
                    GAChannelDaily.company_id == company_id,
                    GAChannelDaily.date == day,
                    GAChannelDaily.channel == channel,
                ).first()
                if existing is None:
                    existing = GAChannelDaily(company_id=company_id, date=day, channel=channel)
                    db.add(existing)

                existing.sessions = raw.get("sessions") or 0
                existing.users = raw.get("users") or 0
                existing.synced_at = datetime.utcnow()
                written += 1

        return written

    def upsert_snapshot(
        self,
        company_id: str,
        platform: str,
        period_start: date,
        period_end: date,
        payload: Dict[str, Any],
        snapshot_date: Optional[date] = None,
    ) -> None:
        with session_scope(self.session_factory) as db:
            existing = db.query(PeriodSnapshot).filter(
                PeriodSnapshot.company_id == company_id,
                PeriodSnapshot.platform == platform,
                PeriodSnapshot.period_start == period_start,
                PeriodSnapshot.period_end == period_end,
            ).first()
            if existing is None:
                existing = PeriodSnapshot(
                    company_id=company_id,
                    platform=platform,
                    period_start=period_start,
                    period_end=period_end,
                )
                db.add(existing)

            existing.payload = payload
            existing.snapshot_date = snapshot_date or datetime.utcnow().date()
            existing.updated_at = datetime.utcnow()

    def cleanup(self, daily_cutoff: date, snapshot_cutoff: date) -> Dict[str, int]:
        """Delete daily rows before daily_cutoff and snapshots taken before snapshot_cutoff"""
        deleted = {}
        with session_scope(self.session_factory) as db:
            for platform, model in DAILY_MODELS.items():
                deleted[platform] = db.query(model).filter(
                    model.date < daily_cutoff
                ).delete(synchronize_session=False)

            deleted["ga_channels"] = db.query(GAChannelDaily).filter(
                GAChannelDaily.date < daily_cutoff
            ).delete(synchronize_session=False)

            deleted["snapshots"] = db.query(PeriodSnapshot).filter(
                PeriodSnapshot.snapshot_date < snapshot_cutoff
            ).delete(synchronize_session=False)

        log.info(f"[Storage] Cleanup removed {sum(deleted.values())} rows "
                 f"(daily before {daily_cutoff}, snapshots before {snapshot_cutoff})")
        return deleted
