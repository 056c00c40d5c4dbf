"""
Session manager: login, registration, refresh and logout on top of the token
codec and the credential store.

Revocation works by membership: a refresh token is honoured only while the
owner still holds a record with exactly that string, even though its
signature stays valid until natural expiry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from models.activity_log import ActivityAction
from models.credential_store import CredentialStore
from models.user import User
from utils.activity import ActivityLogger, ClientInfo
from utils.errors import (
    Conflict,
    Forbidden,
    InvalidCredentials,
    InvalidRefreshToken,
    NotFound,
    TokenError,
)
from utils.security import (
    ROLE_USER,
    decoy_hash,
    hash_password,
    needs_rehash,
    normalize_role,
    verify_password,
)
from utils.tokens import TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ExternalIdentity:
    """An identity already verified by a third-party provider."""
    external_id: str
    email: str
    name: Optional[str] = None
    provider: str = "google"


class SessionManager:
    def __init__(self, codec: TokenCodec, store: CredentialStore, audit: ActivityLogger):
        self.codec = codec
        self.store = store
        self.audit = audit

    def _issue(self, user: User) -> AuthResult:
        access_token = self.codec.mint_access(user)
        refresh_token = self.codec.mint_refresh(user)
        self.store.add_refresh_token(user, refresh_token)
        return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)

    def register(self, name: str, email: str, password: str, client: Optional[ClientInfo] = None) -> AuthResult:
        # self-registration never chooses its own role
        user = self.store.create_user(
            name=name, email=email, password_hash=hash_password(password), role=ROLE_USER
        )
        logger.info("Registered user %s", user.id)
        result = self._issue(user)
        self.audit.record(user.id, ActivityAction.LOGIN, True, {"login_method": "email_password", "registered": True}, client)
        return result

    def login(self, email: str, password: str, client: Optional[ClientInfo] = None) -> AuthResult:
        user = self.store.get_user_by_email(email)
        stored_hash = user.password_hash if user is not None else None
        verified = verify_password(password, stored_hash or decoy_hash())
        if user is None:
            raise InvalidCredentials()
        if not stored_hash or not verified:
            self.audit.record(user.id, ActivityAction.LOGIN, False, {"login_method": "email_password"}, client)
            raise InvalidCredentials()

        if needs_rehash(user.password_hash):
            self.store.update_user(user, password_hash=hash_password(password))

        result = self._issue(user)
        self.audit.record(user.id, ActivityAction.LOGIN, True, {"login_method": "email_password"}, client)
        return result

    def login_with_external_identity(self, identity: ExternalIdentity, client: Optional[ClientInfo] = None) -> AuthResult:
        user = self.store.get_user_by_external_id(identity.external_id)
        linked = False
        if user is None:
            user = self.store.get_user_by_email(identity.email)
            if user is not None:
                if user.external_id and user.external_id != identity.external_id:
                    logger.warning("User %s is already linked to another %s identity", user.id, identity.provider)
                    raise Conflict("Account is linked to another identity")
                self.store.update_user(user, external_id=identity.external_id)
                linked = True
            else:
                user = self.store.create_user(
                    name=identity.name or identity.email.split("@")[0],
                    email=identity.email,
                    external_id=identity.external_id,
                )
                logger.info("Created user %s from %s identity", user.id, identity.provider)

        result = self._issue(user)
        self.audit.record(
            user.id,
            ActivityAction.EXTERNAL_LOGIN,
            True,
            {"login_method": identity.provider, "linked_existing": linked},
            client,
        )
        return result

    def refresh(self, refresh_token: str, client: Optional[ClientInfo] = None) -> str:
        try:
            claims = self.codec.verify_refresh(refresh_token)
        except TokenError as exc:
            raise InvalidRefreshToken() from exc

        user = self.store.get_user(claims.user_id)
        if user is None:
            raise InvalidRefreshToken()
        if not self.store.has_refresh_token(user.id, refresh_token):
            raise InvalidRefreshToken()

        access_token = self.codec.mint_access(user)
        self.audit.record(user.id, ActivityAction.TOKEN_REFRESH, True, None, client)
        return access_token

    def logout(self, user: User, refresh_token: str, client: Optional[ClientInfo] = None) -> int:
        removed = self.store.remove_refresh_token(user.id, refresh_token)
        logger.info("Removed %d refresh token(s) for user %s", removed, user.id)
        self.audit.record(
            user.id,
            ActivityAction.LOGOUT,
            True,
            {"logout_type": "single_device", "token_found": bool(removed)},
            client,
        )
        return removed

    def logout_all(self, user: User, client: Optional[ClientInfo] = None) -> int:
        removed = self.store.clear_refresh_tokens(user.id)
        logger.info("Removed all %d refresh tokens for user %s", removed, user.id)
        self.audit.record(user.id, ActivityAction.LOGOUT_ALL, True, {"logout_type": "all_devices", "tokens_cleared": removed}, client)
        return removed

    def clear_tokens(self, actor: User, target_user_id: Optional[str] = None, client: Optional[ClientInfo] = None) -> int:
        target_user_id = target_user_id or actor.id
        if target_user_id != actor.id and not actor.is_admin:
            raise Forbidden("Not authorized to clear other user's tokens")
        if self.store.get_user(target_user_id, with_secrets=False) is None:
            raise NotFound("User not found")

        removed = self.store.clear_refresh_tokens(target_user_id)
        self.audit.record(
            actor.id,
            ActivityAction.LOGOUT_ALL,
            True,
            {"logout_type": "force_clear", "target_user_id": target_user_id, "tokens_cleared": removed},
            client,
        )
        return removed

    def change_role(self, actor: User, target_user_id: str, role: str) -> User:
        """The only path that elevates a role: an authenticated admin acting on a user."""
        if not actor.is_admin:
            raise Forbidden("Access denied. Admin role required.")
        target = self.store.get_user(target_user_id)
        if target is None:
            raise NotFound("User not found")
        new_role = normalize_role(role)
        if target.role != new_role:
            logger.info("User %s changed role of %s from %s to %s", actor.id, target.id, target.role, new_role)
            self.store.update_user(target, role=new_role)
        return target

    def change_password(
        self,
        user: User,
        current_password: Optional[str],
        new_password: str,
        client: Optional[ClientInfo] = None,
    ) -> int:
        """Set a new password and revoke every outstanding refresh token."""
        if not user.password_hash:
            # accounts created through an identity provider keep signing in there
            self.audit.record(user.id, ActivityAction.PASSWORD_CHANGE, False, {"reason": "no_password"}, client)
            raise Forbidden("Password login is not enabled for this account")
        if not verify_password(current_password or "", user.password_hash):
            self.audit.record(user.id, ActivityAction.PASSWORD_CHANGE, False, None, client)
            raise InvalidCredentials("Current password is incorrect")

        self.store.update_user(user, password_hash=hash_password(new_password))
        revoked = self.store.clear_refresh_tokens(user.id)
        self.audit.record(user.id, ActivityAction.PASSWORD_CHANGE, True, {"tokens_revoked": revoked}, client)
        return revoked

    def list_sessions(self, user: User) -> List[Dict[str, Any]]:
        return [
            {"id": record.id, "created_at": record.created_at, "token_preview": record.preview}
            for record in self.store.list_refresh_tokens(user.id)
        ]
