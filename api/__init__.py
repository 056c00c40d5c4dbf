import atexit

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import get_config
from .errors import register_error_handlers
from models import storage  # DBStorage singleton (scoped_session)
from models.credential_store import CredentialStore
from services.session_manager import SessionManager
from services.token_sweeper import CleanupDispatcher, SweepScheduler, TokenSweeper
from utils.activity import ActivityLogger
from utils.tokens import TokenCodec


# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Token Auth Service",
        "version": "1.0.0",
        "description": "Issues, refreshes and revokes access/refresh token pairs and guards role-based resources.",
    },
    "basePath": "/",  # Blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def init_auth(app: Flask) -> None:
    """
    Build the token services for this app and bind the background cleanup
    work to the process lifecycle.
    """
    config = app.config
    codec = TokenCodec.from_config(config)
    store = CredentialStore(storage, max_tokens_per_user=config["MAX_REFRESH_TOKENS_PER_USER"])
    audit = ActivityLogger(storage)
    sweeper = TokenSweeper(codec, store, max_age=config["TOKEN_MAX_AGE"])

    app.extensions["token_codec"] = codec
    app.extensions["credential_store"] = store
    app.extensions["activity_logger"] = audit
    app.extensions["session_manager"] = SessionManager(codec, store, audit)
    app.extensions["token_sweeper"] = sweeper

    if config["TOKEN_SWEEP_ON_REQUEST"]:
        dispatcher = CleanupDispatcher(
            sweeper, max_workers=config["TOKEN_SWEEP_WORKERS"], on_finish=storage.close
        )
        app.extensions["cleanup_dispatcher"] = dispatcher
        atexit.register(dispatcher.shutdown, wait=False)

    if config["TOKEN_SWEEP_ENABLED"]:
        scheduler = SweepScheduler(
            sweeper,
            interval=config["TOKEN_SWEEP_INTERVAL"],
            initial_delay=config["TOKEN_SWEEP_INITIAL_DELAY"],
            on_finish=storage.close,
        )
        scheduler.start()
        app.extensions["sweep_scheduler"] = scheduler
        atexit.register(scheduler.stop)


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    overrides is applied on top of the selected config class (tests use it
    to point DATABASE_URL at a temporary database).
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    if app.config["PROXY_FIX_X_FOR"]:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["PROXY_FIX_X_FOR"])

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage.configure(app.config["DATABASE_URL"], echo=app.config["SQL_ECHO"])
    init_auth(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp
    from .logs import bp as logs_bp
    from .cli import register_cli

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")
    app.register_blueprint(logs_bp, url_prefix="/api/v1/logs")
    register_cli(app)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Token Auth Service",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
