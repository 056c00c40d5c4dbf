"""
Credential store: users, their password hashes and their refresh-token records.

The refresh-token records are the only persisted authorization state. Every
mutation is a short read-modify-write against the current thread's session,
committed immediately; there is no in-process locking.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import defer

from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.user import User
from utils.errors import Conflict
from utils.security import ROLE_USER, normalize_role

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS_PER_USER = 5


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class CredentialStore:
    def __init__(self, storage: DBStorage, max_tokens_per_user: int = DEFAULT_MAX_TOKENS_PER_USER):
        self.storage = storage
        self.max_tokens_per_user = max_tokens_per_user

    @property
    def session(self):
        return self.storage.get_session()

    def _save_and_expire(self):
        # bulk deletes bypass the identity map; reload anything cached
        self.storage.save()
        self.session.expire_all()

    def _commit(self, conflict_message: str = "Email already exists"):
        try:
            self.storage.save()
        except IntegrityError as exc:
            raise Conflict(conflict_message) from exc

    # users

    def get_user(self, user_id: str, with_secrets: bool = True) -> Optional[User]:
        if not user_id:
            return None
        if with_secrets:
            return self.storage.get(User, user_id)
        return (
            self.session.query(User)
            .options(defer(User.password_hash))
            .filter(User.id == user_id)
            .first()
        )

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.session.query(User).filter(User.email == normalize_email(email)).first()

    def get_user_by_external_id(self, external_id: str) -> Optional[User]:
        if not external_id:
            return None
        return self.session.query(User).filter(User.external_id == external_id).first()

    def create_user(
        self,
        name: str,
        email: str,
        password_hash: Optional[str] = None,
        role: str = ROLE_USER,
        external_id: Optional[str] = None,
    ) -> User:
        email = normalize_email(email)
        if self.get_user_by_email(email):
            raise Conflict("User already exists with this email")
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=normalize_role(role),
            external_id=external_id,
        )
        self.storage.new(user)
        self._commit("User already exists with this email")
        return user

    def update_user(self, user: User, **fields) -> User:
        if "email" in fields and fields["email"] is not None:
            fields["email"] = normalize_email(fields["email"])
        if "role" in fields:
            fields["role"] = normalize_role(fields["role"])
        for key, value in fields.items():
            setattr(user, key, value)
        self.storage.new(user)
        self._commit()
        return user

    def delete_user(self, user: User) -> None:
        self.storage.delete(user)
        self.storage.save()

    def list_users(self, page: int, limit: int) -> Tuple[List[User], int]:
        query = self.session.query(User).options(defer(User.password_hash))
        total = query.count()
        rows = (
            query.order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    # refresh-token records

    def add_refresh_token(self, user: User, token: str) -> RefreshToken:
        """Append a record, dropping the oldest ones beyond the per-user bound."""
        record = RefreshToken(user_id=user.id, token=token)
        self.storage.new(record)
        self.session.flush()

        records = self.list_refresh_tokens(user.id)
        overflow = len(records) - self.max_tokens_per_user
        if overflow > 0:
            for stale in records[:overflow]:
                self.storage.delete(stale)
            logger.info("Dropped %d oldest refresh tokens for user %s", overflow, user.id)
        self._save_and_expire()
        return record

    def list_refresh_tokens(self, user_id: str) -> List[RefreshToken]:
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.asc(), RefreshToken.id.asc())
            .all()
        )

    def has_refresh_token(self, user_id: str, token: str) -> bool:
        return (
            self.session.query(RefreshToken.id)
            .filter(RefreshToken.user_id == user_id, RefreshToken.token == token)
            .first()
            is not None
        )

    def remove_refresh_token(self, user_id: str, token: str) -> int:
        removed = (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.token == token)
            .delete(synchronize_session=False)
        )
        self._save_and_expire()
        return removed

    def clear_refresh_tokens(self, user_id: str) -> int:
        removed = (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self._save_and_expire()
        return removed

    def delete_refresh_tokens(self, record_ids: Iterable[str]) -> int:
        record_ids = list(record_ids)
        if not record_ids:
            return 0
        removed = (
            self.session.query(RefreshToken)
            .filter(RefreshToken.id.in_(record_ids))
            .delete(synchronize_session=False)
        )
        self._save_and_expire()
        return removed

    def users_with_refresh_tokens(self) -> List[str]:
        rows = self.session.query(RefreshToken.user_id).distinct().all()
        return [user_id for (user_id,) in rows]

    def delete_refresh_tokens_created_before(self, cutoff: datetime) -> Tuple[int, int]:
        """Bulk delete records created before cutoff; returns (records, users affected)."""
        users_affected = (
            self.session.query(func.count(func.distinct(RefreshToken.user_id)))
            .filter(RefreshToken.created_at < cutoff)
            .scalar()
            or 0
        )
        removed = (
            self.session.query(RefreshToken)
            .filter(RefreshToken.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self._save_and_expire()
        return removed, users_affected
