from datetime import timedelta

import pytest

from models.base_model import utcnow
from models.credential_store import CredentialStore
from models.refresh_token import RefreshToken
from utils.errors import Conflict


@pytest.fixture
def user(store):
    return store.create_user(name="Alice", email="Alice@X.com ", password_hash="hash")


def test_create_user_normalises_email_and_defaults_role(user):
    assert user.email == "alice@x.com"
    assert user.role == "user"


def test_create_user_rejects_duplicate_email(store, user):
    with pytest.raises(Conflict):
        store.create_user(name="Other", email="ALICE@x.com")


def test_unknown_role_is_normalised(store):
    user = store.create_user(name="Bob", email="bob@x.com", role="superuser")
    assert user.role == "user"


def test_get_user_without_secrets_still_resolves(store, user):
    loaded = store.get_user(user.id, with_secrets=False)
    assert loaded.id == user.id
    assert store.get_user("missing") is None
    assert store.get_user(None) is None


def test_membership_is_exact(store, user):
    store.add_refresh_token(user, "token-one")

    assert store.has_refresh_token(user.id, "token-one")
    assert not store.has_refresh_token(user.id, "token-on")
    assert not store.has_refresh_token("someone-else", "token-one")


def test_remove_single_token_is_idempotent(store, user):
    store.add_refresh_token(user, "token-one")
    store.add_refresh_token(user, "token-two")

    assert store.remove_refresh_token(user.id, "token-one") == 1
    assert store.remove_refresh_token(user.id, "token-one") == 0
    assert [r.token for r in store.list_refresh_tokens(user.id)] == ["token-two"]


def test_clear_refresh_tokens(store, user):
    store.add_refresh_token(user, "token-one")
    store.add_refresh_token(user, "token-two")

    assert store.clear_refresh_tokens(user.id) == 2
    assert store.list_refresh_tokens(user.id) == []


def test_record_list_is_bounded(store, user):
    bounded = CredentialStore(store.storage, max_tokens_per_user=2)
    for token in ("first", "second", "third"):
        bounded.add_refresh_token(user, token)

    assert [r.token for r in bounded.list_refresh_tokens(user.id)] == ["second", "third"]


def test_delete_created_before_reports_users_affected(store, user):
    other = store.create_user(name="Carol", email="carol@x.com")
    store.add_refresh_token(user, "old-a")
    store.add_refresh_token(other, "old-b")
    store.add_refresh_token(user, "young")

    session = store.session
    session.query(RefreshToken).filter(RefreshToken.token.in_(["old-a", "old-b"])).update(
        {RefreshToken.created_at: utcnow() - timedelta(days=40)}, synchronize_session=False
    )
    session.commit()

    removed, users = store.delete_refresh_tokens_created_before(utcnow() - timedelta(days=30))

    assert (removed, users) == (2, 2)
    assert [r.token for r in store.list_refresh_tokens(user.id)] == ["young"]


def test_users_with_refresh_tokens(store, user):
    store.create_user(name="Dan", email="dan@x.com")
    store.add_refresh_token(user, "t")

    assert store.users_with_refresh_tokens() == [user.id]


def test_deleting_a_user_removes_their_records(store, user):
    store.add_refresh_token(user, "t")
    store.delete_user(user)

    assert store.session.query(RefreshToken).count() == 0
