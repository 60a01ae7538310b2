from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
import pytest
from jose import jwt

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.accounts import schemas as account_schemas
from invoicedb.apps.accounts import services as account_services
from invoicedb.security import JWT_ALGORITHM, SECRET_KEY, get_password_hash


def _bootstrap(db) -> account_models.User:
    user = account_services.bootstrap_company(
        db,
        account_schemas.BootstrapRequest(
            company_code="demo",
            company_name="Demo Trading",
            login_slug="Demo",
            email="owner@demo.mu",
            full_name="Owner",
            password="correct-horse",
        ),
    )
    db.commit()
    return user


def _login(db, password: str, slug: str = "demo"):
    return account_services.authenticate_user(
        db,
        login_req=account_schemas.LoginRequest(company_slug=slug, email="owner@demo.mu", password=password),
        ip="127.0.0.1",
        user_agent="pytest",
    )


def test_bootstrap_creates_company_and_admin_once(db_session):
    user = _bootstrap(db_session)
    assert user.role == "admin"
    assert user.company.code == "DEMO"
    assert user.company.login_slug == "demo"
    assert all(user.permissions.values())

    with pytest.raises(ValueError):
        _bootstrap(db_session)


def test_login_success_records_security_event(db_session):
    _bootstrap(db_session)
    user = _login(db_session, "correct-horse")
    assert user.last_login_at is not None
    assert user.login_attempts == 0

    events = [e.event_type for e in db_session.query(account_models.AccountSecurityEvent).all()]
    assert events == ["LOGIN_SUCCESS"]


def test_login_accepts_company_code(db_session):
    _bootstrap(db_session)
    assert _login(db_session, "correct-horse", slug="DEMO").email == "owner@demo.mu"


def test_three_failures_lock_the_account(db_session):
    user = _bootstrap(db_session)

    for _ in range(3):
        with pytest.raises(account_services.AuthenticationError):
            _login(db_session, "wrong")

    db_session.refresh(user)
    assert user.locked_until is not None
    assert user.lockout_count == 1

    with pytest.raises(account_services.AuthenticationError) as exc:
        _login(db_session, "correct-horse")
    assert exc.value.retry_after_seconds is not None
    assert 0 < exc.value.retry_after_seconds <= 30


def test_second_lockout_uses_longer_window(db_session):
    user = _bootstrap(db_session)
    user.lockout_count = 1
    user.login_attempts = 2
    db_session.commit()

    with pytest.raises(account_services.AuthenticationError):
        _login(db_session, "wrong")

    locked_until = user.locked_until
    if locked_until.tzinfo is None:
        locked_until = locked_until.replace(tzinfo=timezone.utc)
    remaining = locked_until - datetime.now(timezone.utc)
    assert timedelta(seconds=60) < remaining <= timedelta(seconds=90)


def test_unknown_user_fails(db_session):
    _bootstrap(db_session)
    with pytest.raises(account_services.AuthenticationError):
        _login(db_session, "correct-horse", slug="other")


def test_issue_access_token_claims(db_session):
    user = _bootstrap(db_session)
    token, expires_in = account_services.issue_access_token_for_user(user)
    claims = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    assert claims["sub"] == user.id
    assert claims["company_id"] == user.company_id
    assert claims["role"] == "admin"
    assert expires_in > 0


def test_legacy_bcrypt_hash_verifies_and_is_upgraded(db_session):
    user = _bootstrap(db_session)
    user.hashed_password = bcrypt.hashpw(b"old-pass", bcrypt.gensalt()).decode("utf-8")
    db_session.commit()

    assert _login(db_session, "old-pass").id == user.id
    assert user.hashed_password.startswith("$argon2")
    assert _login(db_session, "old-pass").id == user.id


def test_register_idempotency_key_conflict(db_session):
    first = account_services.register_idempotency_key(db_session, scope="s", key="k", payload={"a": 1})
    again = account_services.register_idempotency_key(db_session, scope="s", key="k", payload={"a": 1})
    assert again.id == first.id

    with pytest.raises(account_services.IdempotencyError):
        account_services.register_idempotency_key(db_session, scope="s", key="k", payload={"a": 2})


def test_password_hash_is_argon2():
    assert get_password_hash("pw").startswith("$argon2")
