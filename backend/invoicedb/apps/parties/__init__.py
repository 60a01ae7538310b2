"""
Parties module.

Customers (AR counterparties) and suppliers (AP counterparties).
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
