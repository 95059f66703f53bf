"""
Invitations Module

Onboarding accounts into a school with limited-use invitation codes:
1. Role-gated issuing (who may invite whom, per the role hierarchy)
2. Redemption with atomic, race-free usage counting
3. Revocation by creators and school admins
4. Parent invites linking a parent account to a student
5. Background sweep of expired codes

API Endpoints:
- /invitations/* - Invitation tokens
- /parent-invites/* - Parent-student link invites

Security Features:
- CSPRNG codes from a 62-symbol alphabet, unique per table
- Unknown, expired and used-up codes answered identically on public endpoints
- Rate limiting on public code endpoints
- Codes never logged in full
"""

from .jobs import register_invitation_jobs
from .parent_router import router as parent_router
from .router import router

__all__ = ["router", "parent_router", "register_invitation_jobs"]
