"""
Sales module.

Invoices, payments, credit notes, quotations, public print links and PDF
export.
"""

from .router import router  # noqa: F401
from .router_public import router as public_router  # noqa: F401
from . import models  # noqa: F401
