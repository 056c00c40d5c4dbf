from models.base_model import Base, BaseModel
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from utils.security import ROLE_ADMIN, ROLE_USER


class User(BaseModel, Base):
    __tablename__ = "users"
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    # null for accounts that only ever signed in through an identity provider
    password_hash = Column(String(255), nullable=True)
    role = Column(String(16), nullable=False, default=ROLE_USER)
    external_id = Column(String(255), nullable=True, unique=True, index=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        order_by="RefreshToken.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
