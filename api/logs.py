from __future__ import annotations

from datetime import timedelta

from flask import Blueprint, request, jsonify, g, abort
from sqlalchemy import func

from models import storage
from models.activity_log import ActivityAction, ActivityLog
from models.base_model import utcnow
from models.schemas.activity_log import ActivityLogOutSchema
from models.user import User
from utils.decorators import jwt_required, roles_required
from utils.security import ROLE_ADMIN
from .users import parse_pagination

bp = Blueprint("logs", __name__)

logs_out_schema = ActivityLogOutSchema(many=True)


def _page(query, page: int, limit: int):
    total = query.count()
    rows = query.order_by(ActivityLog.timestamp.desc()).offset((page - 1) * limit).limit(limit).all()
    return rows, {"page": page, "limit": limit, "total": total, "pages": -(-total // limit)}


@bp.get("/my-activity")
@jwt_required()
def my_activity():
    """
    The caller's own activity, newest first
    ---
    tags:
      - Logs
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
    responses:
      200: { description: OK }
    """
    page, limit = parse_pagination(default_limit=20)
    query = storage.get_session().query(ActivityLog).filter(ActivityLog.user_id == g.current_user.id)
    rows, meta = _page(query, page, limit)
    return jsonify({"data": logs_out_schema.dump(rows), "meta": meta}), 200


@bp.get("/all-activity")
@roles_required([ROLE_ADMIN])
def all_activity():
    """
    Every user's activity - admin. Optional filters: action, user_id
    ---
    tags:
      - Logs
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
      - { in: query, name: action, type: string }
      - { in: query, name: user_id, type: string }
    responses:
      200: { description: OK }
      400: { description: Unknown action }
    """
    page, limit = parse_pagination(default_limit=50)
    action = request.args.get("action")
    user_id = request.args.get("user_id")

    query = storage.get_session().query(ActivityLog)
    if action:
        try:
            query = query.filter(ActivityLog.action == ActivityAction(action))
        except ValueError:
            abort(400, description=f"Unknown action: {action}")
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)

    rows, meta = _page(query, page, limit)
    meta["filters"] = {"action": action, "user_id": user_id}
    return jsonify({"data": logs_out_schema.dump(rows), "meta": meta}), 200


@bp.get("/stats")
@roles_required([ROLE_ADMIN])
def stats():
    """
    Activity statistics - admin
    ---
    tags:
      - Logs
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    this_week = today - timedelta(days=7)
    this_month = today.replace(day=1)

    def count_since(since):
        return session.query(func.count(ActivityLog.id)).filter(ActivityLog.timestamp >= since).scalar() or 0

    by_action = (
        session.query(ActivityLog.action, func.count(ActivityLog.id).label("count"))
        .group_by(ActivityLog.action)
        .order_by(func.count(ActivityLog.id).desc())
        .all()
    )
    most_active = (
        session.query(User.id, User.name, User.email, func.count(ActivityLog.id).label("count"))
        .join(ActivityLog, ActivityLog.user_id == User.id)
        .filter(ActivityLog.timestamp >= this_week)
        .group_by(User.id, User.name, User.email)
        .order_by(func.count(ActivityLog.id).desc())
        .limit(10)
        .all()
    )

    return jsonify(
        {
            "data": {
                "today": count_since(today),
                "this_week": count_since(this_week),
                "this_month": count_since(this_month),
                "by_action": [{"action": action.value, "count": count} for action, count in by_action],
                "most_active_users": [
                    {"user_id": uid, "name": name, "email": email, "count": count}
                    for uid, name, email, count in most_active
                ],
            }
        }
    ), 200
