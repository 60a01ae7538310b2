"""
Inventory module.

Products, unit-of-measure conversion and the stock movement ledger.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
