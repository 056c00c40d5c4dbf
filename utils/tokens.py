"""
Token codec: mints and verifies signed, time-limited JWTs (PyJWT, HS256).

- access tokens carry {sub, email, role} and are signed with the access secret
- refresh tokens carry {sub} only and are signed with a distinct refresh secret
- iat and exp are checked against the codec's own clock, so verification stays a pure
  function of secret + token + clock
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import jwt

from utils.errors import ExpiredToken, MalformedToken

ACCESS = "access"
REFRESH = "refresh"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID)."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    token_type: str
    jti: str
    issued_at: int
    expires_at: int
    email: Optional[str] = None
    role: Optional[str] = None


class TokenCodec:
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        issuer: str = "token-auth-service",
        clock: Callable[[], datetime] = _utc_now,
    ):
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self.issuer = issuer
        self.clock = clock

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TokenCodec":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            issuer=config.get("JWT_ISSUER", "token-auth-service"),
        )

    def _encode(self, claims: Dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = self.clock()
        payload = {
            "iss": self.issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "jti": generate_jti(),
            **claims,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def mint_access(self, user) -> str:
        return self._encode(
            {"sub": str(user.id), "email": user.email, "role": user.role, "type": ACCESS},
            self.access_secret,
            self.access_ttl,
        )

    def mint_refresh(self, user) -> str:
        return self._encode({"sub": str(user.id), "type": REFRESH}, self.refresh_secret, self.refresh_ttl)

    def _decode(self, token: str, secret: str, expected_type: str) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise MalformedToken()
        try:
            # time claims are compared below against self.clock, never the wall clock
            decoded = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={
                    "require": ["sub", "iat", "exp", "jti"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise MalformedToken() from exc

        if decoded.get("type") != expected_type:
            raise MalformedToken()
        try:
            issued_at = int(decoded["iat"])
            expires_at = int(decoded["exp"])
        except (TypeError, ValueError) as exc:
            raise MalformedToken() from exc
        now = int(self.clock().timestamp())
        if issued_at > now:
            raise MalformedToken()
        if now >= expires_at:
            raise ExpiredToken()

        return TokenClaims(
            user_id=str(decoded["sub"]),
            token_type=expected_type,
            jti=decoded["jti"],
            issued_at=issued_at,
            expires_at=expires_at,
            email=decoded.get("email"),
            role=decoded.get("role"),
        )

    def verify_access(self, token: str) -> TokenClaims:
        return self._decode(token, self.access_secret, ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._decode(token, self.refresh_secret, REFRESH)
