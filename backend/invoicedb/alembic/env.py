# backend/invoicedb/alembic/env.py
"""Alembic environment for invoicedb. Online runs reuse the app's write engine."""

from __future__ import annotations

import importlib
import os
import sys
from logging.config import fileConfig

from alembic import context

# backend/ must be importable when alembic is run from the repo root.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from invoicedb.database import Base, write_engine  # noqa: E402

# Each app's models module registers its tables on Base.metadata.
MODEL_MODULES = (
    "invoicedb.apps.accounts.models",
    "invoicedb.apps.audit.models",
    "invoicedb.apps.parties.models",
    "invoicedb.apps.inventory.models",
    "invoicedb.apps.sales.models",
    "invoicedb.apps.payables.models",
)
for module_name in MODEL_MODULES:
    importlib.import_module(module_name)

target_metadata = Base.metadata

COMPARE = {"compare_type": True, "compare_server_default": True}


def _offline_url() -> str:
    """alembic.ini's URL unless it is still the `driver://` template."""
    url = (config.get_main_option("sqlalchemy.url") or "").strip()
    if url and not url.startswith("driver://"):
        return url
    url = (os.getenv("DATABASE_WRITE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Offline SQL needs sqlalchemy.url in alembic.ini or DATABASE_WRITE_URL / DATABASE_URL")
    return url


if context.is_offline_mode():
    context.configure(url=_offline_url(), target_metadata=target_metadata, literal_binds=True, **COMPARE)
    with context.begin_transaction():
        context.run_migrations()
else:
    with write_engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            # SQLite cannot ALTER most constraints in place.
            render_as_batch=connection.dialect.name == "sqlite",
            **COMPARE,
        )
        with context.begin_transaction():
            context.run_migrations()
