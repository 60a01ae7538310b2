# backend/invoicedb/security.py

"""
Passwords, access tokens and the current-user dependencies.

Tokens are bound to a company: the `company_id` claim must match the
user's company, and a deactivated company locks out all of its users
without touching the user rows.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Callable, Optional, Set, Union

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from invoicedb.apps.accounts import models as account_models
from invoicedb.apps.accounts.models import AccountRole

SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")

_hasher = PasswordHasher(
    time_cost=int(os.getenv("ARGON2_TIME_COST", "3")),
    memory_cost=int(os.getenv("ARGON2_MEMORY_COST", "65536")),  # KiB
    parallelism=int(os.getenv("ARGON2_PARALLELISM", "2")),
    hash_len=int(os.getenv("ARGON2_HASH_LEN", "32")),
    salt_len=int(os.getenv("ARGON2_SALT_LEN", "16")),
)


# ---------------------------------------------------------------------------
# PASSWORDS
# ---------------------------------------------------------------------------


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Argon2id for our own hashes, bcrypt for users migrated from the old app."""
    if not plain_password or not hashed_password:
        return False

    if hashed_password.startswith("$argon2"):
        try:
            return _hasher.verify(hashed_password, plain_password)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False

    if hashed_password.startswith(_BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            return False

    return False


def get_password_hash(password: str) -> str:
    return _hasher.hash(password)


def password_needs_rehash(hashed_password: str) -> bool:
    """True for bcrypt hashes and argon2 hashes made with older cost settings."""
    if not hashed_password or not hashed_password.startswith("$argon2"):
        return True
    try:
        return _hasher.check_needs_rehash(hashed_password)
    except InvalidHash:
        return True


# ---------------------------------------------------------------------------
# TOKENS
# ---------------------------------------------------------------------------


def create_access_token(*, data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """`data` carries at least {"sub": user.id, "company_id": user.company_id}."""
    claims = dict(data)
    claims["exp"] = datetime.utcnow() + (
        expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(claims, SECRET_KEY, algorithm=JWT_ALGORITHM)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()
    if not claims.get("sub") or not claims.get("company_id"):
        raise _credentials_exception()
    return claims


# ---------------------------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------------------------


def get_user_by_id(db: Session, user_id: Union[str, int]) -> Optional[account_models.User]:
    if user_id is None:
        return None
    return db.query(account_models.User).filter(account_models.User.id == str(user_id).strip()).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> account_models.User:
    claims = decode_access_token(token)
    user = get_user_by_id(db, claims["sub"])
    if user is None or user.company_id != claims["company_id"]:
        raise _credentials_exception()
    return user


def get_current_active_user(
    current_user: account_models.User = Depends(get_current_user),
) -> account_models.User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user account")
    company = current_user.company
    if company is not None and not company.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Company account is suspended")
    return current_user


def require_roles(
    *allowed_roles: Union[AccountRole, str],
) -> Callable[[account_models.User], account_models.User]:
    """
    Role gate for routers that are not covered by a permission key (audit,
    admin screens). `admin` always passes.

        current_user: User = Depends(require_roles(AccountRole.MANAGER))
    """
    roles: Set[str] = set()
    for role in allowed_roles:
        try:
            roles.add(AccountRole(role).value)
        except ValueError:
            raise ValueError(f"Unknown role {role!r} passed to require_roles()")

    def dependency(
        current_user: account_models.User = Depends(get_current_active_user),
    ) -> account_models.User:
        if current_user.is_admin or current_user.role in roles:
            return current_user
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this operation",
        )

    return dependency
