"""
Unit tests for invite code generation.
"""

import string
from unittest.mock import patch

import pytest

from onboarding.modules.invitations.generator import ALPHABET, TokenGenerator


class TestTokenGenerator:
    """Tests for TokenGenerator.generate_candidate."""

    def test_alphabet_is_62_alphanumerics(self):
        assert len(ALPHABET) == 62
        assert set(ALPHABET) == set(string.ascii_letters + string.digits)

    def test_default_length_is_16(self):
        code = TokenGenerator().generate_candidate()
        assert len(code) == 16
        assert set(code) <= set(ALPHABET)

    @pytest.mark.parametrize("length", [1, 8, 32, 64])
    def test_explicit_length(self, length):
        assert len(TokenGenerator().generate_candidate(length)) == length

    def test_configured_length(self):
        assert len(TokenGenerator(length=24).generate_candidate()) == 24

    @pytest.mark.parametrize("length", [0, -1])
    def test_rejects_non_positive_length(self, length):
        with pytest.raises(ValueError):
            TokenGenerator().generate_candidate(length)
        with pytest.raises(ValueError):
            TokenGenerator(length=length)

    def test_uses_secrets_module(self):
        """Every character comes from the CSPRNG."""
        with patch(
            "onboarding.modules.invitations.generator.secrets.choice", return_value="Z"
        ) as mock_choice:
            code = TokenGenerator().generate_candidate(5)

        assert code == "ZZZZZ"
        assert mock_choice.call_count == 5

    def test_candidates_are_not_repeated(self):
        generator = TokenGenerator()
        codes = {generator.generate_candidate() for _ in range(500)}
        assert len(codes) == 500
