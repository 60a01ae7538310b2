# backend/invoicedb/apps/accounts/router_admin.py

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from invoicedb.database import get_db
from invoicedb.permissions import require_permission
from . import models, schemas, services

router = APIRouter(prefix="/admin/users", tags=["admin_users"])


def _admin_read(user: models.User, temp_password: str | None = None) -> schemas.AdminUserRead:
    read = schemas.AdminUserRead.model_validate(user)
    read.role = services.display_role(user.role)
    read.permissions = services.sanitize_permissions(user.permissions)
    read.temp_password = temp_password
    return read


@router.post(
    "",
    response_model=schemas.AdminUserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user in the current company",
)
def create_user_admin(
    payload: schemas.AdminUserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("users.manage")),
):
    """
    When `password` is omitted a temporary password is generated and
    returned once in `temp_password`.
    """
    try:
        user, temp_password = services.create_user(
            db,
            company_id=current_user.company_id,
            payload=payload,
            actor_user_id=current_user.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return _admin_read(user, temp_password)


@router.get("", response_model=List[schemas.UserRead], summary="List company users")
def list_users_admin(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("users.manage")),
):
    return services.list_users(db, company_id=current_user.company_id)


@router.patch("/{user_id}", response_model=schemas.AdminUserRead, summary="Update a user")
def update_user_admin(
    user_id: str,
    payload: schemas.AdminUserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("users.manage")),
):
    try:
        user = services.update_user(
            db,
            company_id=current_user.company_id,
            user_id=user_id,
            payload=payload,
            actor_user_id=current_user.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return _admin_read(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a user")
def delete_user_admin(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("users.manage")),
):
    try:
        services.delete_user(
            db,
            company_id=current_user.company_id,
            user_id=user_id,
            actor_user_id=current_user.id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
