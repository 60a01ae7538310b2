# backend/invoicedb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, EmailStr, Field

# ---------------------------------------------------------------------------
# COMPANY
# ---------------------------------------------------------------------------


class CompanyBase(BaseModel):
    code: str
    name: str
    login_slug: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    brn: Optional[str] = None
    vat_no: Optional[str] = None
    currency: str = "MUR"


class CompanyRead(CompanyBase):
    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class UserRead(BaseModel):
    id: str
    company_id: str
    email: str
    full_name: Optional[str] = None
    role: str
    permissions: Dict[str, bool] = Field(default_factory=dict)
    is_active: bool
    must_change_password: bool = False
    last_login_at: Optional[datetime] = None
    last_login_ip: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AdminUserCreate(BaseModel):
    # Plain str: the service owns email validation and its error message.
    email: str
    full_name: Optional[str] = None
    role: str = "viewer"
    is_active: bool = True
    permissions: Optional[Dict[str, object]] = None
    password: Optional[str] = None


class AdminUserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None
    permissions: Optional[Dict[str, object]] = None
    reset_password: Optional[str] = Field(
        default=None,
        description="When set, replaces the user's password.",
    )


class AdminUserRead(UserRead):
    temp_password: Optional[str] = Field(
        default=None,
        description="Generated password, returned only once on creation.",
    )


# ---------------------------------------------------------------------------
# AUTH
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    company_slug: str = Field(..., description="Company login slug, e.g. 'acme'")
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead
    company: CompanyRead


class BootstrapRequest(BaseModel):
    company_code: str
    company_name: str
    login_slug: str
    address: Optional[str] = None
    phone: Optional[str] = None
    company_email: Optional[EmailStr] = None
    brn: Optional[str] = None
    vat_no: Optional[str] = None

    email: EmailStr
    full_name: Optional[str] = None
    password: str = Field(..., min_length=8)
