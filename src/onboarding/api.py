from fastapi import APIRouter

from onboarding.modules.invitations import parent_router as parent_invites_router
from onboarding.modules.invitations import router as invitations_router
from onboarding.modules.messaging import router as messaging_router

api_router = APIRouter()

api_router.include_router(invitations_router, prefix="/invitations", tags=["Invitations"])

api_router.include_router(
    parent_invites_router, prefix="/parent-invites", tags=["Parent Invites"]
)

api_router.include_router(messaging_router, prefix="/messaging", tags=["Messaging"])
