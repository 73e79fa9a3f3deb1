"""
Admin action rate limiter

Sliding window over the admin audit log: an actor may perform an action at
most N times in any trailing hour. Each allowed action is recorded, so the
audit log is also the window.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from marketing_hub.config import get_settings
from marketing_hub.exceptions import RateLimitExceeded
from marketing_hub.models.audit import AdminAuditLog
from marketing_hub.models.base import SessionLocal, session_scope
from marketing_hub.utils.logger import log


class AdminRateLimiter:

    def __init__(
        self,
        session_factory=SessionLocal,
        max_per_window: Optional[int] = None,
        window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.max_per_window = max_per_window if max_per_window is not None else get_settings().admin_actions_per_hour
        self.window = window
        self.clock = clock

    def count_recent(self, actor: str, action: str) -> int:
        since = self.clock() - self.window
        with session_scope(self.session_factory) as db:
            return db.query(AdminAuditLog).filter(
                AdminAuditLog.actor == actor,
                AdminAuditLog.action == action,
                AdminAuditLog.created_at > since,
            ).count()

    def check_and_record(self, actor: str, action: str, details: Optional[Dict[str, Any]] = None) -> int:
        """
        Record the action if the actor is under the limit.

        Returns how many actions remain in the window; raises
        RateLimitExceeded otherwise.
        """
        now = self.clock()
        since = now - self.window
        with session_scope(self.session_factory) as db:
            recent = db.query(AdminAuditLog).filter(
                AdminAuditLog.actor == actor,
                AdminAuditLog.action == action,
                AdminAuditLog.created_at > since,
            ).order_by(AdminAuditLog.created_at.asc()).all()

            if len(recent) >= self.max_per_window:
                oldest = recent[0].created_at
                retry_after = max(1, int((oldest + self.window - now).total_seconds()))
                log.warning(f"[RateLimit] {actor} exceeded {action} limit ({self.max_per_window}/hour)")
                raise RateLimitExceeded(actor, action, self.max_per_window, retry_after)

            db.add(AdminAuditLog(actor=actor, action=action, details=details, created_at=now))
            return self.max_per_window - len(recent) - 1
