"""API route handlers."""
from . import dashboard, snaptrade, sync

__all__ = ["dashboard", "snaptrade", "sync"]
