"""
API routes for Ticketry.
"""

from ticketry.api.routes import plugins

__all__ = ["plugins"]
