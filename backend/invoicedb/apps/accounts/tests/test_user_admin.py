from __future__ import annotations

import re

import pytest
from fastapi import HTTPException

from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.accounts import schemas as account_schemas
from invoicedb.apps.accounts import services as account_services
from invoicedb.apps.accounts.router_admin import delete_user_admin, create_user_admin
from invoicedb.security import verify_password


def _create_company(db, code: str = "ACME") -> account_models.Company:
    company = account_models.Company(code=code, name=f"{code} Ltd", login_slug=code.lower())
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def _create_admin(db, company_id: str) -> account_models.User:
    user = account_models.User(
        company_id=company_id,
        email="admin@example.com",
        full_name="Admin",
        hashed_password="hash",
        role=account_models.AccountRole.ADMIN.value,
        permissions={},
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_sanitize_permissions_keeps_known_keys_only():
    result = account_services.sanitize_permissions({"ar.view": 1, "bogus": True, "ap.view": ""})
    assert set(result) == set(account_models.ALL_PERMISSION_KEYS)
    assert result["ar.view"] is True
    assert result["ap.view"] is False
    assert result["users.manage"] is False
    assert "bogus" not in result


def test_generate_password_uses_alphabet():
    password = account_services.generate_password()
    assert len(password) == 12
    assert re.fullmatch(r"[A-HJ-NP-Za-km-z2-9!@#$%]+", password)
    assert len(account_services.generate_password(20)) == 20


def test_create_user_generates_temp_password_and_logs_activity(db_session):
    company = _create_company(db_session)
    admin = _create_admin(db_session, company.id)

    user, temp_password = account_services.create_user(
        db_session,
        company_id=company.id,
        payload=account_schemas.AdminUserCreate(
            email="  Clerk@Example.COM ",
            full_name="Clerk",
            role="accountant",
            permissions={"ar.view": True, "unknown": True},
        ),
        actor_user_id=admin.id,
    )
    db_session.commit()

    assert user.email == "clerk@example.com"
    assert temp_password
    assert verify_password(temp_password, user.hashed_password)
    assert user.must_change_password is True
    assert user.permissions["ar.view"] is True
    assert "unknown" not in user.permissions

    activity = db_session.query(account_models.UserActivity).one()
    assert activity.event == "user.create"
    assert activity.meta == {"created_user": "clerk@example.com"}


def test_create_user_with_password_returns_no_temp_password(db_session):
    company = _create_company(db_session)
    user, temp_password = account_services.create_user(
        db_session,
        company_id=company.id,
        payload=account_schemas.AdminUserCreate(email="sales@example.com", role="sales", password="s3cret-pass"),
        actor_user_id=None,
    )
    assert temp_password is None
    assert verify_password("s3cret-pass", user.hashed_password)


def test_create_user_rejects_bad_email_role_and_duplicates(db_session):
    company = _create_company(db_session)

    with pytest.raises(ValueError, match="Invalid email"):
        account_services.create_user(
            db_session,
            company_id=company.id,
            payload=account_schemas.AdminUserCreate(email="not-an-email"),
            actor_user_id=None,
        )
    with pytest.raises(ValueError, match="Invalid role"):
        account_services.create_user(
            db_session,
            company_id=company.id,
            payload=account_schemas.AdminUserCreate(email="a@b.co", role="owner"),
            actor_user_id=None,
        )

    account_services.create_user(
        db_session,
        company_id=company.id,
        payload=account_schemas.AdminUserCreate(email="a@b.co", password="password1"),
        actor_user_id=None,
    )
    with pytest.raises(HTTPException) as exc:
        account_services.create_user(
            db_session,
            company_id=company.id,
            payload=account_schemas.AdminUserCreate(email="A@B.co", password="password1"),
            actor_user_id=None,
        )
    assert exc.value.status_code == 409


def test_router_maps_validation_error_to_400(db_session):
    company = _create_company(db_session)
    admin = _create_admin(db_session, company.id)

    with pytest.raises(HTTPException) as exc:
        create_user_admin(
            payload=account_schemas.AdminUserCreate(email="x@y.z", role="root"),
            db=db_session,
            current_user=admin,
        )
    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid role"


def test_list_users_shows_unknown_roles_as_viewer(db_session):
    company = _create_company(db_session)
    legacy = account_models.User(
        company_id=company.id,
        email="legacy@example.com",
        hashed_password="hash",
        role="superuser",
        permissions={"ar.view": True},
    )
    db_session.add(legacy)
    db_session.commit()

    users = account_services.list_users(db_session, company_id=company.id)
    assert users[0].role == "viewer"
    assert users[0].permissions["ar.view"] is True
    assert users[0].permissions["ap.view"] is False


def test_update_user_resets_password_and_sanitizes(db_session):
    company = _create_company(db_session)
    admin = _create_admin(db_session, company.id)
    user, _ = account_services.create_user(
        db_session,
        company_id=company.id,
        payload=account_schemas.AdminUserCreate(email="u@example.com", password="first-pass"),
        actor_user_id=admin.id,
    )

    updated = account_services.update_user(
        db_session,
        company_id=company.id,
        user_id=user.id,
        payload=account_schemas.AdminUserUpdate(
            role="MANAGER",
            permissions={"reports.view": True, "nope": True},
            is_active=False,
            reset_password="second-pass",
        ),
        actor_user_id=admin.id,
    )
    db_session.commit()

    assert updated.role == "manager"
    assert updated.permissions["reports.view"] is True
    assert "nope" not in updated.permissions
    assert updated.is_active is False
    assert updated.deactivated_at is not None
    assert verify_password("second-pass", updated.hashed_password)

    events = [a.event for a in db_session.query(account_models.UserActivity).all()]
    assert events == ["user.create", "user.update"]


def test_admin_cannot_delete_self(db_session):
    company = _create_company(db_session)
    admin = _create_admin(db_session, company.id)

    with pytest.raises(HTTPException) as exc:
        delete_user_admin(user_id=admin.id, db=db_session, current_user=admin)
    assert exc.value.status_code == 400


def test_delete_user_removes_row_and_logs(db_session):
    company = _create_company(db_session)
    admin = _create_admin(db_session, company.id)
    user, _ = account_services.create_user(
        db_session,
        company_id=company.id,
        payload=account_schemas.AdminUserCreate(email="gone@example.com", password="password1"),
        actor_user_id=admin.id,
    )
    db_session.commit()

    response = delete_user_admin(user_id=user.id, db=db_session, current_user=admin)
    assert response.status_code == 204
    assert db_session.query(account_models.User).filter_by(id=user.id).first() is None
    last = db_session.query(account_models.UserActivity).order_by(account_models.UserActivity.id.desc()).first()
    assert last.event == "user.delete"
    assert last.meta == {"deleted_user": "gone@example.com"}
