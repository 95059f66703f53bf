"""
Users module - Identity profiles consulted for role and tenant.
"""

from onboarding.modules.users.models import User
from onboarding.modules.users.repository import UserRepository

__all__ = ["User", "UserRepository"]
