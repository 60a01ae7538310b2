from __future__ import annotations

import create_initial_admin
from invoicedb.apps.accounts import models as account_models
from invoicedb.security import verify_password

ARGS = [
    "--company-code",
    "acme",
    "--company-name",
    "Acme Ltd",
    "--slug",
    "Acme",
    "--email",
    "Admin@Acme.mu",
    "--password",
    "Str0ngPass!",
]


def test_creates_company_and_admin(db_session, capsys):
    rc = create_initial_admin.main(ARGS, session_factory=lambda: db_session)

    assert rc == 0
    assert "[OK] Created admin user" in capsys.readouterr().out

    company = db_session.query(account_models.Company).one()
    assert company.code == "ACME"
    assert company.login_slug == "acme"

    user = db_session.query(account_models.User).one()
    assert user.company_id == company.id
    assert user.email == "admin@acme.mu"
    assert user.role == account_models.AccountRole.ADMIN.value
    assert all(user.permissions.get(key) for key in account_models.ALL_PERMISSION_KEYS)
    assert verify_password("Str0ngPass!", user.hashed_password)


def test_refuses_once_users_exist(db_session, capsys):
    assert create_initial_admin.main(ARGS, session_factory=lambda: db_session) == 0
    capsys.readouterr()

    rc = create_initial_admin.main(ARGS, session_factory=lambda: db_session)

    assert rc == 1
    assert "bootstrap endpoint is disabled" in capsys.readouterr().out
    assert db_session.query(account_models.Company).count() == 1


def test_requires_password(db_session, capsys, monkeypatch):
    monkeypatch.delenv("INITIAL_ADMIN_PASSWORD", raising=False)
    args = ARGS[:-2]

    rc = create_initial_admin.main(args, session_factory=lambda: db_session)

    assert rc == 2
    assert "INITIAL_ADMIN_PASSWORD" in capsys.readouterr().out
