"""
Role Models

The closed set of organizational roles.
"""

from enum import Enum


class Role(str, Enum):
    """Organizational roles, from platform level down to students."""

    SUPER_ADMIN = "superadmin"
    BIG_ADMIN = "bigadmin"
    ADMIN = "admin"
    TEACHER = "teacher"
    PARENT = "parent"
    STUDENT = "student"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """
        Parse a role from storage or a request.

        Matching is case-insensitive and ignores surrounding whitespace.

        Raises:
            ValueError: If the value is not a known role
        """
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown role: {value!r}")

        normalized = value.strip().lower()
        for role in cls:
            if role.value == normalized:
                return role

        raise ValueError(f"Unknown role: {value!r}")

    @classmethod
    def parse_or_none(cls, value: "str | Role | None") -> "Role | None":
        """Parse a role, mapping missing or unknown values to None."""
        if value is None:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None
