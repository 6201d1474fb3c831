"""HTTP routers."""

from . import dashboard, ping, tickets

__all__ = ["dashboard", "ping", "tickets"]
