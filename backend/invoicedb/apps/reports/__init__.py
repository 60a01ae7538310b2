"""Reporting (AR/AP aging, statements, sales summary)."""

from .router import router  # noqa: F401
