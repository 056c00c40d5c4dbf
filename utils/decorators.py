from __future__ import annotations
import logging
from functools import wraps
from flask import request, g, current_app

from utils.errors import Forbidden, TokenError, Unauthenticated

logger = logging.getLogger(__name__)


def _bearer_token() -> str:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise Unauthenticated("Access denied. No token provided.")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise Unauthenticated("Access denied. No token provided.")
    return token


def jwt_required():
    """
    Access guard: verify the bearer access token, load the live user into
    g.current_user and queue a background sweep of that user's refresh tokens.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _bearer_token()
            codec = current_app.extensions["token_codec"]
            store = current_app.extensions["credential_store"]
            try:
                claims = codec.verify_access(token)
            except TokenError as e:
                raise Unauthenticated(e.message) from e

            user = store.get_user(claims.user_id, with_secrets=False)
            if not user:
                raise Unauthenticated("Invalid token. User not found.")
            g.current_user = user
            g.current_token_claims = claims

            dispatcher = current_app.extensions.get("cleanup_dispatcher")
            if dispatcher is not None:
                try:
                    dispatcher.submit(user.id)
                except Exception:
                    logger.exception("Could not dispatch token cleanup for user %s", user.id)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the authenticated user's role is one of required_roles.
    """
    req = set(required_roles or [])
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if g.current_user.role not in req:
                raise Forbidden(f"Access denied. Required role: {', '.join(sorted(req))}.")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
