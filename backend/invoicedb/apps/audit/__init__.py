"""
Audit module.

Append-only audit trail written by every state-changing service.
"""
