"""
Permission gating.

Each router declares the permission key it needs (see
`accounts.models.ALL_PERMISSION_KEYS`). Users carry a permission map that an
admin edits; the `admin` role bypasses the check entirely.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status

from invoicedb.apps.accounts import models as account_models

from .security import get_current_active_user


def require_permission(permission_key: str) -> Callable[[account_models.User], account_models.User]:
    """
    FastAPI dependency that blocks access when the user lacks `permission_key`.

    Usage:
        router = APIRouter(
            prefix="/invoices",
            dependencies=[Depends(require_permission("ar.view"))],
        )
    """
    if permission_key not in account_models.ALL_PERMISSION_KEYS:
        raise ValueError(f"Unknown permission {permission_key!r}")

    def dependency(
        current_user: account_models.User = Depends(get_current_active_user),
    ) -> account_models.User:
        if not getattr(current_user, "company_id", None):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No company selected for the current session.",
            )
        if not current_user.has_permission(permission_key):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission_key}' is required for this operation.",
            )
        return current_user

    return dependency
