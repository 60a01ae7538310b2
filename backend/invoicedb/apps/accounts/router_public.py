# backend/invoicedb/apps/accounts/router_public.py

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db
from invoicedb.security import get_current_active_user
from . import models, schemas, services

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _user_read(user: models.User) -> schemas.UserRead:
    read = schemas.UserRead.model_validate(user)
    read.role = services.display_role(user.role)
    read.permissions = services.sanitize_permissions(user.permissions)
    return read


# ---------------------------------------------------------------------------
# LOGIN
# ---------------------------------------------------------------------------


@router.post(
    "/login",
    response_model=schemas.Token,
    summary="Login with company slug, email and password",
)
def login(
    payload: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        user = services.authenticate_user(
            db,
            login_req=payload,
            ip=_client_ip(request),
            user_agent=_user_agent(request),
        )
    except services.AuthenticationError as exc:
        headers = None
        if exc.retry_after_seconds is not None:
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "Incorrect email, password or company.",
            headers=headers,
        )

    token, expires_in = services.issue_access_token_for_user(user)
    return schemas.Token(
        access_token=token,
        expires_in=expires_in,
        user=_user_read(user),
        company=user.company,
    )


# ---------------------------------------------------------------------------
# CURRENT USER
# ---------------------------------------------------------------------------


@router.get("/me", response_model=schemas.UserRead, summary="Get current logged-in user")
def read_current_user(
    current_user: models.User = Depends(get_current_active_user),
):
    return _user_read(current_user)


# ---------------------------------------------------------------------------
# BOOTSTRAP: FIRST COMPANY + ADMIN
# ---------------------------------------------------------------------------


@router.post(
    "/bootstrap",
    response_model=schemas.UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Bootstrap the first company and its admin",
    description=(
        "Used once on an empty database. Returns **400** as soon as any user "
        "exists."
    ),
)
def bootstrap(
    payload: schemas.BootstrapRequest,
    db: Session = Depends(get_db),
):
    try:
        user = services.bootstrap_company(db, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return _user_read(user)
