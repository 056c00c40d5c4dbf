from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.activity_log import ActivityAction
from models.schemas.user import UserOutSchema, UserUpdateSchema
from utils.activity import ClientInfo
from utils.decorators import jwt_required, roles_required
from utils.errors import Forbidden, NotFound
from utils.security import ROLE_ADMIN

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

user_update_schema = UserUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def parse_pagination(default_limit: int = 10) -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", str(default_limit)))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def _store():
    return current_app.extensions["credential_store"]


def _ensure_self_or_admin(user_id: str):
    if not g.current_user.is_admin and g.current_user.id != user_id:
        raise Forbidden("Access denied")


@bp.get("/users")
@roles_required([ROLE_ADMIN])
def list_users():
    """
    List all users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
    responses:
      200: { description: OK }
      403: { description: Admin role required }
    """
    page, limit = parse_pagination()
    rows, total = _store().list_users(page, limit)
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)},
        }
    )


@bp.get("/users/<user_id>")
@jwt_required()
def get_user(user_id: str):
    """
    Get a user - self or admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: OK }
      403: { description: Access denied }
      404: { description: User not found }
    """
    _ensure_self_or_admin(user_id)
    user = _store().get_user(user_id, with_secrets=False)
    if not user:
        raise NotFound("User not found")
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.put("/users/<user_id>")
@jwt_required()
def update_user(user_id: str):
    """
    Update a user - self or admin. Only an admin may change the role.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            email: { type: string }
            role: { type: string, enum: [user, admin] }
    responses:
      200: { description: OK }
      403: { description: Access denied }
      404: { description: User not found }
      409: { description: Email already exists }
    """
    _ensure_self_or_admin(user_id)
    payload = request.get_json(silent=True) or {}
    data = user_update_schema.load(payload)
    role = data.pop("role", None)

    store = _store()
    user = store.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    if data:
        store.update_user(user, **data)
    fields = sorted(data)
    # a role sent by a non-admin is ignored
    if role is not None and g.current_user.is_admin:
        user = current_app.extensions["session_manager"].change_role(g.current_user, user_id, role)
        fields.append("role")

    current_app.extensions["activity_logger"].record(
        g.current_user.id,
        ActivityAction.PROFILE_UPDATE,
        True,
        {"target_user_id": user_id, "fields": fields},
        ClientInfo.from_request(request),
    )
    return jsonify({"message": "User updated successfully", "data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>")
@roles_required([ROLE_ADMIN])
def delete_user(user_id: str):
    """
    Delete a user and, with it, their sessions and activity - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: Deleted }
      404: { description: User not found }
    """
    store = _store()
    user = store.get_user(user_id)
    if not user:
        raise NotFound("User not found")
    store.delete_user(user)
    return jsonify({"message": "User deleted successfully"}), 200
