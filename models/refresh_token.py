"""
RefreshToken model: one row per outstanding refresh token (one session/device).
Fields:
- token: the signed token string; a token is only honoured while its row exists
- user_id (String(36)) - FK to users.id
- created_at (from BaseModel), used by the age-based sweep
"""
from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(Text, nullable=False, unique=True)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("ix_refresh_tokens_created_at", "created_at"),
    )

    @property
    def preview(self) -> str:
        return self.token[:20] + "..."

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} token={self.preview}>"
