import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("APP_ENV", "testing")

from api import create_app  # noqa: E402
from models import storage  # noqa: E402
from utils.security import ROLE_ADMIN, hash_password  # noqa: E402
from utils.tokens import TokenCodec  # noqa: E402


@pytest.fixture
def make_app(tmp_path):
    """Build an app on a fresh SQLite file; extra config keys override TestingConfig."""
    created = []

    def _make(**overrides):
        config = {"DATABASE_URL": f"sqlite:///{tmp_path / 'auth.db'}"}
        config.update(overrides)
        app = create_app("testing", overrides=config)
        created.append(app)
        return app

    yield _make

    for app in created:
        dispatcher = app.extensions.get("cleanup_dispatcher")
        if dispatcher is not None:
            dispatcher.shutdown(wait=True)
        scheduler = app.extensions.get("sweep_scheduler")
        if scheduler is not None:
            scheduler.stop()
    storage.close()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def codec(app):
    return app.extensions["token_codec"]


@pytest.fixture
def store(app):
    return app.extensions["credential_store"]


@pytest.fixture
def sessions(app):
    return app.extensions["session_manager"]


@pytest.fixture
def sweeper(app):
    return app.extensions["token_sweeper"]


@pytest.fixture
def past_codec(app):
    """Same secrets as the app's codec, but its clock sits 30 days in the past,
    so everything it mints is already expired for the app's codec."""
    config = app.config
    return TokenCodec(
        access_secret=config["JWT_ACCESS_SECRET"],
        refresh_secret=config["JWT_REFRESH_SECRET"],
        access_ttl=config["ACCESS_TOKEN_EXPIRES"],
        refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
        algorithm=config["JWT_ALGORITHM"],
        issuer=config["JWT_ISSUER"],
        clock=lambda: datetime.now(timezone.utc) - timedelta(days=30),
    )


@pytest.fixture
def register(client):
    def _register(email="a@x.com", password="secret1", name="User A"):
        resp = client.post("/api/v1/auth/register", json={"name": name, "email": email, "password": password})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    return _register


@pytest.fixture
def login(client):
    def _login(email="a@x.com", password="secret1"):
        resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    return _login


@pytest.fixture
def admin(store, login):
    store.create_user(name="Admin", email="admin@x.com", password_hash=hash_password("adminpass"), role=ROLE_ADMIN)
    return login("admin@x.com", "adminpass")


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
