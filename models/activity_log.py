from enum import Enum

from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, JSON, Index
from sqlalchemy.types import Enum as SAEnum

from models.base_model import BaseModel, Base, utcnow


class ActivityAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    PROFILE_ACCESS = "profile_access"
    PROFILE_UPDATE = "profile_update"
    TOKEN_REFRESH = "token_refresh"
    EXTERNAL_LOGIN = "external_login"
    PASSWORD_CHANGE = "password_change"
    TOKEN_CLEANUP = "token_cleanup"


class ActivityLog(BaseModel, Base):
    """Append-only audit record."""
    __tablename__ = "activity_logs"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action = Column(SAEnum(ActivityAction, name="activity_action", native_enum=False,
                           values_callable=lambda e: [m.value for m in e]), nullable=False)
    success = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_activity_logs_user_ts", "user_id", "timestamp"),
        Index("ix_activity_logs_action_ts", "action", "timestamp"),
    )
