from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import json
import logging
import re
import secrets
from typing import Dict, List, Mapping, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_password_hash,
    password_needs_rehash,
    verify_password,
)
from . import models, schemas
from .models import ALL_PERMISSION_KEYS, AccountRole

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_LOGIN_ATTEMPTS = 3
LOCKOUT_SCHEDULE_SECONDS = (30, 90, 900)
TEMP_PASSWORD_LENGTH = 12
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789!@#$%"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
VALID_ROLES = frozenset(r.value for r in AccountRole)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthenticationError(Exception):
    """Raised when login credentials are invalid or the account is locked."""

    def __init__(
        self,
        message: str,
        *,
        retry_after_seconds: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class IdempotencyError(Exception):
    """Raised when an idempotency key is reused with a conflicting payload."""


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def _normalise_email(value: str) -> str:
    return (value or "").strip().lower()


def _validate_email(email: str) -> str:
    email = _normalise_email(email)
    if not EMAIL_RE.match(email):
        raise ValueError("Invalid email")
    return email


def _validate_role(role: Optional[str]) -> str:
    value = (role or "").strip().lower()
    if value not in VALID_ROLES:
        raise ValueError("Invalid role")
    return value


def display_role(role: Optional[str]) -> str:
    """Roles stored before the current role set are shown as `viewer`."""
    value = (role or "").strip().lower()
    return value if value in VALID_ROLES else AccountRole.VIEWER.value


def sanitize_permissions(raw: Optional[Mapping[str, object]]) -> Dict[str, bool]:
    """Exactly the known permission keys, each coerced to a bool."""
    raw = raw or {}
    return {key: bool(raw.get(key)) for key in ALL_PERMISSION_KEYS}


def generate_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


# ---------------------------------------------------------------------------
# Activity / security trails
# ---------------------------------------------------------------------------


def _log_user_activity(
    db: Session,
    *,
    company_id: str,
    actor_user_id: Optional[str],
    event: str,
    entity_id: Optional[str],
    meta: Optional[dict] = None,
) -> None:
    db.add(
        models.UserActivity(
            company_id=company_id,
            user_id=actor_user_id,
            event=event,
            entity="users",
            entity_id=entity_id,
            meta=meta,
        )
    )


def _log_security_event(
    db: Session,
    *,
    user: Optional[models.User],
    company: Optional[models.Company],
    event_type: str,
    description: Optional[str],
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    event = models.AccountSecurityEvent(
        user_id=user.id if user else None,
        company_id=company.id if company else None,
        event_type=event_type,
        description=description,
        ip_address=ip,
        user_agent=user_agent,
    )
    db.add(event)
    db.commit()


# ---------------------------------------------------------------------------
# User lifecycle (admin provisioning)
# ---------------------------------------------------------------------------


def _get_company_user(db: Session, *, company_id: str, user_id: str) -> models.User:
    user = (
        db.query(models.User)
        .filter(models.User.company_id == company_id, models.User.id == user_id)
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
    return user


def create_user(
    db: Session,
    *,
    company_id: str,
    payload: schemas.AdminUserCreate,
    actor_user_id: Optional[str],
) -> Tuple[models.User, Optional[str]]:
    """
    Provision a user in the company.

    Returns `(user, temp_password)`. `temp_password` is only set when the
    caller did not supply a password, and is never stored in clear.
    """
    email = _validate_email(payload.email)
    role = _validate_role(payload.role)

    dup = (
        db.query(models.User)
        .filter(models.User.company_id == company_id, models.User.email == email)
        .first()
    )
    if dup:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists.",
        )

    temp_password: Optional[str] = None
    password = (payload.password or "").strip()
    if not password:
        temp_password = generate_password()
        password = temp_password

    user = models.User(
        company_id=company_id,
        email=email,
        full_name=(payload.full_name or "").strip() or None,
        role=role,
        permissions=sanitize_permissions(payload.permissions),
        is_active=bool(payload.is_active),
        hashed_password=get_password_hash(password),
        must_change_password=temp_password is not None,
    )
    db.add(user)
    db.flush()

    _log_user_activity(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        event="user.create",
        entity_id=user.id,
        meta={"created_user": email},
    )
    logger.info("User provisioned", extra={"company_id": company_id, "user_id": user.id})
    return user, temp_password


def list_users(db: Session, *, company_id: str) -> List[schemas.UserRead]:
    users = (
        db.query(models.User)
        .filter(models.User.company_id == company_id)
        .order_by(models.User.created_at.desc())
        .all()
    )
    out: List[schemas.UserRead] = []
    for user in users:
        read = schemas.UserRead.model_validate(user)
        read.role = display_role(user.role)
        read.permissions = sanitize_permissions(user.permissions)
        out.append(read)
    return out


def update_user(
    db: Session,
    *,
    company_id: str,
    user_id: str,
    payload: schemas.AdminUserUpdate,
    actor_user_id: Optional[str],
) -> models.User:
    user = _get_company_user(db, company_id=company_id, user_id=user_id)
    changes: Dict[str, object] = {}

    if payload.role is not None:
        user.role = _validate_role(payload.role)
        changes["role"] = user.role
    if payload.full_name is not None:
        user.full_name = payload.full_name.strip() or None
        changes["full_name"] = user.full_name
    if payload.permissions is not None:
        user.permissions = sanitize_permissions(payload.permissions)
        changes["permissions"] = user.permissions
    if payload.is_active is not None:
        if user.is_active and not payload.is_active and user.deactivated_at is None:
            user.deactivated_at = datetime.now(timezone.utc)
        if payload.is_active:
            user.deactivated_at = None
        user.is_active = payload.is_active
        changes["is_active"] = user.is_active
    if payload.reset_password:
        user.hashed_password = get_password_hash(payload.reset_password)
        user.must_change_password = True
        user.login_attempts = 0
        user.locked_until = None
        changes["password_reset"] = True

    db.add(user)
    db.flush()

    _log_user_activity(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        event="user.update",
        entity_id=user.id,
        meta={"email": user.email, "changes": sorted(changes)},
    )
    return user


def delete_user(
    db: Session,
    *,
    company_id: str,
    user_id: str,
    actor_user_id: Optional[str],
) -> None:
    if actor_user_id and user_id == actor_user_id:
        raise ValueError("You cannot delete your own account.")

    user = _get_company_user(db, company_id=company_id, user_id=user_id)
    email = user.email
    db.delete(user)
    db.flush()

    _log_user_activity(
        db,
        company_id=company_id,
        actor_user_id=actor_user_id,
        event="user.delete",
        entity_id=user_id,
        meta={"deleted_user": email},
    )


def bootstrap_company(db: Session, payload: schemas.BootstrapRequest) -> models.User:
    """
    Create the first company and its admin. Disabled once any user exists.
    """
    if db.query(models.User).first() is not None:
        raise ValueError("Users already exist; bootstrap endpoint is disabled.")

    company = models.Company(
        code=payload.company_code.strip().upper(),
        name=payload.company_name.strip(),
        login_slug=payload.login_slug.strip().lower(),
        address=payload.address,
        phone=payload.phone,
        email=payload.company_email,
        brn=payload.brn,
        vat_no=payload.vat_no,
        is_active=True,
    )
    db.add(company)
    db.flush()

    user = models.User(
        company_id=company.id,
        email=_validate_email(payload.email),
        full_name=(payload.full_name or "").strip() or None,
        role=AccountRole.ADMIN.value,
        permissions={key: True for key in ALL_PERMISSION_KEYS},
        is_active=True,
        hashed_password=get_password_hash(payload.password),
    )
    db.add(user)
    db.flush()
    _log_user_activity(
        db,
        company_id=company.id,
        actor_user_id=user.id,
        event="user.create",
        entity_id=user.id,
        meta={"created_user": user.email, "bootstrap": True},
    )
    return user


# ---------------------------------------------------------------------------
# Authentication and access tokens
# ---------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_account_locked(user: models.User) -> bool:
    if not user.locked_until:
        return False
    return _as_utc(user.locked_until) > datetime.now(timezone.utc)


def _seconds_until_unlock(user: models.User) -> Optional[int]:
    if not user.locked_until:
        return None
    remaining = _as_utc(user.locked_until) - datetime.now(timezone.utc)
    return max(0, int(remaining.total_seconds()))


def _register_failed_login(
    db: Session,
    user: models.User,
    company: Optional[models.Company],
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    user.login_attempts = (user.login_attempts or 0) + 1

    _log_security_event(
        db,
        user=user,
        company=company,
        event_type="LOGIN_FAILED",
        description="Invalid password.",
        ip=ip,
        user_agent=user_agent,
    )

    if user.login_attempts < MAX_LOGIN_ATTEMPTS:
        db.add(user)
        db.commit()
        return

    user.login_attempts = 0
    user.lockout_count = (user.lockout_count or 0) + 1
    lockout_index = min(user.lockout_count - 1, len(LOCKOUT_SCHEDULE_SECONDS) - 1)
    lockout_seconds = LOCKOUT_SCHEDULE_SECONDS[lockout_index]
    user.locked_until = datetime.now(timezone.utc) + timedelta(seconds=lockout_seconds)
    db.add(user)
    db.commit()

    _log_security_event(
        db,
        user=user,
        company=company,
        event_type="LOCKOUT",
        description=f"Account locked for {lockout_seconds} seconds after repeated failures.",
        ip=ip,
        user_agent=user_agent,
    )
    logger.warning(
        "Account locked after repeated failed logins",
        extra={"user_id": user.id, "lockout_seconds": lockout_seconds},
    )


def _reset_failed_logins(
    db: Session,
    user: models.User,
    company: Optional[models.Company],
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    user.login_attempts = 0
    user.locked_until = None
    user.lockout_count = 0
    user.last_login_at = datetime.now(timezone.utc)
    user.last_login_ip = ip
    db.add(user)
    db.commit()

    _log_security_event(
        db,
        user=user,
        company=company,
        event_type="LOGIN_SUCCESS",
        description=None,
        ip=ip,
        user_agent=user_agent,
    )


def find_company_by_slug_or_code(db: Session, slug: str) -> Optional[models.Company]:
    slug_norm = (slug or "").strip().lower()
    if not slug_norm:
        return None

    company = (
        db.query(models.Company)
        .filter(
            func.lower(models.Company.login_slug) == slug_norm,
            models.Company.is_active.is_(True),
        )
        .first()
    )
    if company:
        return company

    return (
        db.query(models.Company)
        .filter(
            func.lower(models.Company.code) == slug_norm,
            models.Company.is_active.is_(True),
        )
        .first()
    )


def authenticate_user(
    db: Session,
    *,
    login_req: schemas.LoginRequest,
    ip: Optional[str],
    user_agent: Optional[str],
) -> models.User:
    """
    Password login scoped to a company slug.

    Raises AuthenticationError for unknown users, bad passwords and locked
    accounts. Every outcome is recorded as an AccountSecurityEvent.
    """
    email = _normalise_email(login_req.email)
    company = find_company_by_slug_or_code(db, login_req.company_slug)

    user: Optional[models.User] = None
    if company:
        user = (
            db.query(models.User)
            .filter(models.User.company_id == company.id, models.User.email == email)
            .first()
        )

    if not user or not user.is_active:
        _log_security_event(
            db,
            user=None,
            company=company,
            event_type="LOGIN_FAILED",
            description="Unknown user or inactive account.",
            ip=ip,
            user_agent=user_agent,
        )
        raise AuthenticationError("Invalid credentials.")

    if _is_account_locked(user):
        _log_security_event(
            db,
            user=user,
            company=company,
            event_type="LOCKOUT",
            description="Account locked due to repeated failed logins.",
            ip=ip,
            user_agent=user_agent,
        )
        raise AuthenticationError(
            "Account locked due to repeated failed attempts.",
            retry_after_seconds=_seconds_until_unlock(user),
        )

    if not verify_password(login_req.password, user.hashed_password):
        _register_failed_login(db, user, company, ip, user_agent)
        raise AuthenticationError("Invalid credentials.")

    if password_needs_rehash(user.hashed_password):
        user.hashed_password = get_password_hash(login_req.password)
    _reset_failed_logins(db, user, company, ip, user_agent)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """
    Returns (token_string, expires_in_seconds).
    """
    payload = {
        "sub": str(user.id),
        "company_id": user.company_id,
        "role": display_role(user.role),
    }
    token = create_access_token(
        data=payload,
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return token, int(ACCESS_TOKEN_EXPIRE_MINUTES * 60)


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


def _hash_payload(payload: dict) -> str:
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()


def register_idempotency_key(
    db: Session,
    *,
    scope: str,
    key: str,
    payload: dict,
) -> models.IdempotencyKey:
    if not key:
        raise ValueError("idempotency key is required")

    payload_hash = _hash_payload(payload)
    existing = (
        db.query(models.IdempotencyKey)
        .filter(
            models.IdempotencyKey.scope == scope,
            models.IdempotencyKey.key == key,
        )
        .first()
    )
    if existing:
        if existing.payload_hash != payload_hash:
            raise IdempotencyError("Idempotency key reuse with different payload.")
        return existing

    idem = models.IdempotencyKey(scope=scope, key=key, payload_hash=payload_hash)
    db.add(idem)
    db.flush()
    return idem


def claim_idempotency_key(
    db: Session,
    *,
    company_id: str,
    scope: str,
    key: Optional[str],
    payload: dict,
) -> None:
    """
    Document services call this before looking up a prior row by key.
    A conflicting payload surfaces as HTTP 409.
    """
    if not key:
        return
    try:
        register_idempotency_key(db, scope=f"{company_id}:{scope}", key=key, payload=payload)
    except IdempotencyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
