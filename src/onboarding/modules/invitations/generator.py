"""
Invite Code Generator

Codes are drawn character by character from [A-Za-z0-9] using the `secrets`
CSPRNG. A 16-character code carries about 95 bits of entropy. Codes carry no
checksum; uniqueness is enforced by the store, which reports collisions.
"""

import secrets
import string

ALPHABET = string.ascii_letters + string.digits
DEFAULT_CODE_LENGTH = 16


class TokenGenerator:
    """Produces candidate invite codes."""

    alphabet = ALPHABET

    def __init__(self, length: int = DEFAULT_CODE_LENGTH):
        if length < 1:
            raise ValueError(f"Invite code length must be at least 1, got {length}")
        self.length = length

    def generate_candidate(self, length: int | None = None) -> str:
        """
        Return a fresh random code.

        Raises:
            ValueError: If length is less than 1
        """
        length = self.length if length is None else length
        if length < 1:
            raise ValueError(f"Invite code length must be at least 1, got {length}")
        return "".join(secrets.choice(self.alphabet) for _ in range(length))
