"""
Messaging module - Who may open conversations with whom.
"""

from .router import router

__all__ = ["router"]
