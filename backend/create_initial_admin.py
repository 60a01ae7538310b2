# backend/create_initial_admin.py
"""
Create the first company and its admin user from the command line.

    python create_initial_admin.py --company-code ACME --company-name "Acme Ltd" \
        --slug acme --email admin@acme.mu

The password comes from --password or INITIAL_ADMIN_PASSWORD.
"""

from __future__ import annotations

import argparse
import os
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from invoicedb.apps.accounts import schemas, services
from invoicedb.database import SessionLocal


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap the first invoicedb company and admin.")
    parser.add_argument("--company-code", required=True)
    parser.add_argument("--company-name", required=True)
    parser.add_argument("--slug", required=True, help="Login slug for the company")
    parser.add_argument("--email", required=True)
    parser.add_argument("--full-name", default="Administrator")
    parser.add_argument("--password", default=os.getenv("INITIAL_ADMIN_PASSWORD"))
    parser.add_argument("--vat-no", default=None)
    return parser.parse_args(argv)


def main(
    argv: Optional[Sequence[str]] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    args = _parse_args(argv)
    if not args.password:
        print("[ERROR] Pass --password or set INITIAL_ADMIN_PASSWORD.")
        return 2

    db = session_factory()
    try:
        payload = schemas.BootstrapRequest(
            company_code=args.company_code,
            company_name=args.company_name,
            login_slug=args.slug,
            vat_no=args.vat_no,
            email=args.email,
            full_name=args.full_name,
            password=args.password,
        )
        try:
            user = services.bootstrap_company(db, payload)
        except ValueError as exc:
            print(f"[INFO] {exc}")
            return 1
        db.commit()
        db.refresh(user)

        print("[OK] Created admin user:")
        print(f"  id:      {user.id}")
        print(f"  company: {user.company_id}")
        print(f"  email:   {user.email}")
        print(f"  role:    {user.role}")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
