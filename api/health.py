from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import storage
from models.base_model import utcnow

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            database:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
    """
    try:
        storage.get_session().execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        current_app.logger.exception("Health check database probe failed")
        database = "unavailable"
    scheduler = current_app.extensions.get("sweep_scheduler")
    return {
        "status": "ok",
        "database": database,
        "token_sweep_scheduler": "running" if scheduler is not None and scheduler.running else "stopped",
        "env": current_app.config.get("APP_ENV"),
        "timestamp": utcnow().isoformat() + "Z",
        "version": "1.0.0",
    }, 200
