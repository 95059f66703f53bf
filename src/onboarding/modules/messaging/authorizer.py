"""
Conversation Authorizer

Decides whether a user may open a new conversation with another user.

Group conversations are open to everyone. A direct (1:1) thread may only be
opened by someone at or above the other user's level in the role hierarchy,
so parents and students cannot cold-message school staff. Replying inside an
existing thread is not governed here.
"""

from collections.abc import Callable, Iterable
from typing import TypeVar

from onboarding.modules.roles.models import Role
from onboarding.modules.roles.policy import can_initiate_conversation

T = TypeVar("T")


def can_open(actor_role: Role | str | None, other_role: Role | str | None, is_group: bool) -> bool:
    """Whether the actor may open a new conversation with the other user."""
    if is_group:
        return True
    return can_initiate_conversation(actor_role, other_role)


def filter_recipients(
    actor_role: Role | str | None,
    candidates: Iterable[T],
    role_of: Callable[[T], Role | str | None] = lambda candidate: candidate,
) -> list[T]:
    """
    Keep only the candidates the actor may open a direct thread with.

    Args:
        actor_role: The actor's role
        candidates: Users (or roles) to filter, order preserved
        role_of: Extracts a candidate's role; defaults to the candidate itself
    """
    return [
        candidate
        for candidate in candidates
        if can_initiate_conversation(actor_role, role_of(candidate))
    ]
