"""
Unit tests for the conversation authorizer.
"""

from dataclasses import dataclass
from itertools import product

import pytest

from onboarding.modules.messaging.authorizer import can_open, filter_recipients
from onboarding.modules.roles.models import Role
from onboarding.modules.roles.policy import can_initiate_conversation


@dataclass
class Contact:
    name: str
    role: Role | None


class TestCanOpen:
    @pytest.mark.parametrize("actor,other", list(product(Role, Role)))
    def test_groups_always_allowed(self, actor, other):
        assert can_open(actor, other, is_group=True)

    @pytest.mark.parametrize("actor,other", list(product(Role, Role)))
    def test_direct_threads_follow_hierarchy(self, actor, other):
        assert can_open(actor, other, is_group=False) == can_initiate_conversation(actor, other)

    def test_students_cannot_cold_message_staff(self):
        assert not can_open(Role.STUDENT, Role.TEACHER, is_group=False)
        assert not can_open(Role.PARENT, Role.ADMIN, is_group=False)
        assert can_open(Role.TEACHER, Role.PARENT, is_group=False)

    def test_unknown_roles(self):
        assert not can_open(None, Role.STUDENT, is_group=False)
        assert can_open(None, Role.SUPER_ADMIN, is_group=True)


class TestFilterRecipients:
    def test_filters_roles(self):
        candidates = [Role.ADMIN, Role.STUDENT, Role.TEACHER, Role.PARENT]
        assert filter_recipients(Role.TEACHER, candidates) == [
            Role.STUDENT,
            Role.TEACHER,
            Role.PARENT,
        ]

    def test_filters_objects_preserving_order(self):
        contacts = [
            Contact("principal", Role.ADMIN),
            Contact("kid", Role.STUDENT),
            Contact("mystery", None),
            Contact("mum", Role.PARENT),
        ]
        allowed = filter_recipients(Role.PARENT, contacts, role_of=lambda c: c.role)
        assert [c.name for c in allowed] == ["kid", "mystery", "mum"]

    def test_empty(self):
        assert filter_recipients(Role.SUPER_ADMIN, []) == []
