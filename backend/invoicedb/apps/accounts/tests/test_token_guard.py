from __future__ import annotations

import pytest
from fastapi import HTTPException

from invoicedb.apps.accounts import models as account_models
from invoicedb.permissions import require_permission
from invoicedb.security import (
    create_access_token,
    get_current_active_user,
    get_current_user,
    get_password_hash,
    password_needs_rehash,
    require_roles,
)


def _company(db, code: str) -> account_models.Company:
    company = account_models.Company(code=code, name=f"{code} Ltd", login_slug=code.lower())
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _user(db, company, role="sales", permissions=None) -> account_models.User:
    user = account_models.User(
        company_id=company.id,
        email=f"{role}@{company.code.lower()}.mu",
        hashed_password="x",
        role=role,
        permissions=permissions or {},
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_token_resolves_user_of_same_company(db_session):
    company = _company(db_session, "TOK")
    user = _user(db_session, company)
    token = create_access_token(data={"sub": user.id, "company_id": company.id})

    assert get_current_user(token=token, db=db_session).id == user.id


def test_token_with_foreign_company_claim_is_rejected(db_session):
    home = _company(db_session, "HOME")
    other = _company(db_session, "OTHER")
    user = _user(db_session, home)
    token = create_access_token(data={"sub": user.id, "company_id": other.id})

    with pytest.raises(HTTPException) as exc:
        get_current_user(token=token, db=db_session)
    assert exc.value.status_code == 401


@pytest.mark.parametrize("token", ["not-a-jwt", None])
def test_garbage_or_claimless_token_is_rejected(db_session, token):
    if token is None:
        token = create_access_token(data={"sub": "someone"})
    with pytest.raises(HTTPException) as exc:
        get_current_user(token=token, db=db_session)
    assert exc.value.status_code == 401


def test_suspended_company_blocks_active_users(db_session):
    company = _company(db_session, "SUSP")
    user = _user(db_session, company)
    assert get_current_active_user(current_user=user) is user

    company.is_active = False
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        get_current_active_user(current_user=user)
    assert exc.value.status_code == 403


def test_role_and_permission_gates(db_session):
    company = _company(db_session, "GATE")
    clerk = _user(db_session, company, role="sales", permissions={"ar.view": True})
    admin = _user(db_session, company, role="admin")

    managers_only = require_roles("manager")
    with pytest.raises(HTTPException):
        managers_only(current_user=clerk)
    assert managers_only(current_user=admin) is admin

    assert require_permission("ar.view")(current_user=clerk) is clerk
    with pytest.raises(HTTPException) as exc:
        require_permission("ap.view")(current_user=clerk)
    assert exc.value.status_code == 403
    assert require_permission("ap.view")(current_user=admin) is admin

    with pytest.raises(ValueError):
        require_permission("no.such.key")
    with pytest.raises(ValueError):
        require_roles("superuser")


def test_password_needs_rehash():
    assert password_needs_rehash("$2b$12$abcdefghijklmnopqrstuuvwxyzABCDEFGHIJKLMNOPQRSTUVW")
    assert password_needs_rehash("")
    assert not password_needs_rehash(get_password_hash("pw"))
