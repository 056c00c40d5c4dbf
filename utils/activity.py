"""
Activity logging: the append-only audit sink.

Recording never raises; a failed write is logged and rolled back so the
operation that triggered it completes normally.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from models.activity_log import ActivityAction, ActivityLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request) -> "ClientInfo":
        # remote_addr honours X-Forwarded-For only behind ProxyFix (see PROXY_FIX_X_FOR)
        return cls(ip_address=request.remote_addr, user_agent=request.headers.get("User-Agent"))


class ActivityLogger:
    def __init__(self, storage):
        self.storage = storage

    def record(
        self,
        user_id: str,
        action: ActivityAction,
        success: bool = True,
        details: Optional[Dict[str, Any]] = None,
        client: Optional[ClientInfo] = None,
    ) -> None:
        client = client or ClientInfo()
        try:
            entry = ActivityLog(
                user_id=user_id,
                action=ActivityAction(action),
                success=success,
                details=details,
                ip_address=client.ip_address,
                user_agent=(client.user_agent or "")[:512] or None,
            )
            self.storage.new(entry)
            self.storage.save()
            logger.debug("Activity logged: %s for user %s", entry.action.value, user_id)
        except Exception:
            logger.exception("Failed to log activity %s for user %s", action, user_id)
            try:
                self.storage.rollback()
            except Exception:
                logger.exception("Rollback after failed activity log also failed")
