"""
Accounts payable: supplier bills, supplier payments and their allocations.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
