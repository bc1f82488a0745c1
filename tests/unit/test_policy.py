"""
Unit tests for the administrator identity policy.
"""

import pytest

from kindle.errors import PolicyViolationError
from kindle.policy import validate_admin_identity


class TestAdminIdentity:
    """Tests for validate_admin_identity."""

    @pytest.mark.parametrize("identity", ["siteowner", "writer", "boss", "adm1n"])
    def test_allowed_identities_are_returned_unchanged(self, identity):
        assert validate_admin_identity(identity) == identity

    @pytest.mark.parametrize(
        "identity",
        ["admin", "Admin", "ADMIN", "administrator", "administrator2", "the_admin_user", "SysAdmin"],
    )
    def test_rejects_disallowed_substrings(self, identity):
        with pytest.raises(PolicyViolationError):
            validate_admin_identity(identity)

    @pytest.mark.parametrize("identity", ["", "   "])
    def test_rejects_blank(self, identity):
        with pytest.raises(PolicyViolationError):
            validate_admin_identity(identity)

    def test_custom_disallowed_words(self):
        assert validate_admin_identity("admin", disallowed=["root"]) == "admin"

        with pytest.raises(PolicyViolationError):
            validate_admin_identity("ROOTuser", disallowed=["root"])

    def test_message_names_the_word(self):
        with pytest.raises(PolicyViolationError, match="'admin'"):
            validate_admin_identity("webadmin")
