"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout        (no refresh_token in body -> all devices)
- POST /auth/logout-all
- GET  /auth/me
- PUT  /auth/password
- POST /auth/cleanup-tokens
- GET  /auth/token-stats
- POST /auth/clear-tokens
- GET  /auth/tokens

Access tokens are presented as "Authorization: Bearer <token>", refresh tokens
in the JSON body as "refresh_token".
"""
from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from models.activity_log import ActivityAction
from models.schemas.token import (
    CleanupRequestSchema,
    ClearTokensRequestSchema,
    LogoutRequestSchema,
    RefreshRequestSchema,
    SessionOutSchema,
)
from models.schemas.user import PasswordChangeSchema, UserCreateSchema, UserLoginSchema, UserOutSchema
from utils.activity import ClientInfo
from utils.decorators import jwt_required
from utils.errors import Forbidden, NotFound

bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_login_schema = UserLoginSchema()
user_out_schema = UserOutSchema()
password_change_schema = PasswordChangeSchema()
refresh_schema = RefreshRequestSchema()
logout_schema = LogoutRequestSchema()
cleanup_schema = CleanupRequestSchema()
clear_tokens_schema = ClearTokensRequestSchema()
sessions_out_schema = SessionOutSchema(many=True)


def _sessions():
    return current_app.extensions["session_manager"]


def _sweeper():
    return current_app.extensions["token_sweeper"]


def _client() -> ClientInfo:
    return ClientInfo.from_request(request)


def _token_payload(result) -> dict:
    return {
        "user": user_out_schema.dump(result.user),
        "access_token": result.access_token,
        "refresh_token": result.refresh_token,
        "token_type": "bearer",
        "expires_in": int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
    }


@bp.post("/register")
def register():
    """
    Register a new user and open a first session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            email: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created (returns the user and a token pair)
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)
    result = _sessions().register(data["name"], data["email"], data["password"], _client())
    return jsonify(
        {
            "message": "User registered successfully",
            "data": _token_payload(result),
        }
    ), 201


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)
    result = _sessions().login(data["email"], data["password"], _client())
    return jsonify(
        {
            "message": "Login successful",
            "data": _token_payload(result),
        }
    ), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access token (the refresh token is not rotated)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns a new access token)
      401:
        description: Invalid, expired or revoked refresh token
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_schema.load(payload)
    access_token = _sessions().refresh(data["refresh_token"], _client())
    return jsonify(
        {
            "data": {
                "access_token": access_token,
                "token_type": "bearer",
                "expires_in": int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
            }
        }
    ), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: revoke one refresh token, or every one when none is given
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = logout_schema.load(payload)
    refresh_token = data.get("refresh_token")
    if refresh_token:
        _sessions().logout(g.current_user, refresh_token, _client())
        return jsonify({"message": "Logout successful"}), 200

    _sessions().logout_all(g.current_user, _client())
    return jsonify({"message": "Logged out from all devices"}), 200


@bp.post("/logout-all")
@jwt_required()
def logout_all():
    """
    Logout from all devices
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Every refresh token of the caller revoked
    """
    removed = _sessions().logout_all(g.current_user, _client())
    return jsonify({"message": "Logged out from all devices", "data": {"tokens_cleared": removed}}), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = g.current_user
    current_app.extensions["activity_logger"].record(
        user.id, ActivityAction.PROFILE_ACCESS, True, None, _client()
    )
    return jsonify({"data": {"user": user_out_schema.dump(user)}}), 200


@bp.put("/password")
@jwt_required()
def change_password():
    """
    Change the caller's password; every refresh token is revoked
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             current_password: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      401:
        description: Current password is incorrect
      403:
        description: Account has no password (identity-provider sign-in only)
    """
    payload = request.get_json(silent=True) or {}
    data = password_change_schema.load(payload)
    revoked = _sessions().change_password(
        g.current_user, data.get("current_password"), data["new_password"], _client()
    )
    return jsonify({"message": "Password changed", "data": {"tokens_revoked": revoked}}), 200


@bp.post("/cleanup-tokens")
@jwt_required()
def cleanup_tokens():
    """
    Sweep expired refresh tokens now.
    scope=self for the caller, scope=user (admin, with user_id) or scope=all (admin)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             scope: { type: string, enum: [self, user, all] }
             user_id: { type: string }
             max_age_days: { type: integer }
    responses:
      200:
        description: Cleanup report
      403:
        description: Admin role required
    """
    payload = request.get_json(silent=True) or {}
    data = cleanup_schema.load(payload)
    user = g.current_user
    sweeper = _sweeper()
    scope = data["scope"]

    if scope in ("all", "user") and not user.is_admin:
        raise Forbidden("Access denied. Admin role required.")

    if scope == "all":
        max_age = timedelta(days=data["max_age_days"]) if data.get("max_age_days") else None
        global_report = sweeper.sweep_all()
        age_report = sweeper.sweep_older_than(max_age)
        result = {
            "scope": "global",
            "expired_tokens_cleaned": global_report.total_cleaned,
            "users_processed": global_report.users_processed,
            "skipped": global_report.skipped,
            "old_tokens_cleaned": age_report.tokens_removed,
            "old_tokens_users_affected": age_report.users_affected,
        }
    elif scope == "user":
        target_id = data.get("user_id")
        if not target_id or current_app.extensions["credential_store"].get_user(target_id, with_secrets=False) is None:
            raise NotFound("User not found")
        result = {"scope": "user", "user_id": target_id, "tokens_cleaned": sweeper.sweep_user(target_id)}
    else:
        result = {"scope": "self", "user_id": user.id, "tokens_cleaned": sweeper.sweep_user(user.id)}

    current_app.extensions["activity_logger"].record(
        user.id, ActivityAction.TOKEN_CLEANUP, True, result, _client()
    )
    return jsonify({"message": "Token cleanup completed", "data": result}), 200


@bp.get("/token-stats")
@jwt_required()
def token_stats():
    """
    Refresh token statistics: global for admins, the caller's own otherwise
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
    """
    user = g.current_user
    if user.is_admin:
        stats = _sweeper().stats()
        data = {"scope": "global", "total_users": stats.total_users}
    else:
        stats = _sweeper().stats(user.id)
        data = {"scope": "self", "user_id": user.id}
    data.update(
        {
            "total_tokens": stats.total_tokens,
            "valid_tokens": stats.valid_tokens,
            "expired_tokens": stats.expired_tokens,
            "cleanup_needed": stats.cleanup_needed,
        }
    )
    return jsonify({"data": data}), 200


@bp.post("/clear-tokens")
@jwt_required()
def clear_tokens():
    """
    Force clear every refresh token of a user (admin) or of the caller
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             user_id: { type: string }
    responses:
      200:
        description: Tokens cleared
      403:
        description: Not authorized to clear other user's tokens
      404:
        description: User not found
    """
    payload = request.get_json(silent=True) or {}
    data = clear_tokens_schema.load(payload)
    target_id = data.get("user_id") or g.current_user.id
    removed = _sessions().clear_tokens(g.current_user, target_id, _client())
    return jsonify(
        {
            "message": f"Cleared {removed} refresh tokens",
            "data": {"user_id": target_id, "tokens_cleared": removed},
        }
    ), 200


@bp.get("/tokens")
@jwt_required()
def list_tokens():
    """
    The caller's active sessions (token previews only)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
    """
    sessions = _sessions().list_sessions(g.current_user)
    return jsonify(
        {
            "data": {
                "user_id": g.current_user.id,
                "total_refresh_tokens": len(sessions),
                "tokens": sessions_out_schema.dump(sessions),
            }
        }
    ), 200
