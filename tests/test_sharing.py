"""Tests for share-token generation and link checks."""
from datetime import datetime, timedelta

import pytest
from tracelayer_core.models import SharedLink, SharePermission
from tracelayer_core.sharing import (
    TOKEN_ALPHABET,
    ShareLookupError,
    check_link,
    compute_expiry,
    generate_token,
    permission_allows,
)


class TestTokens:
    def test_token_length_and_alphabet(self):
        token = generate_token(12)
        assert len(token) == 12
        assert set(token) <= set(TOKEN_ALPHABET)
        for ambiguous in "0O1lI":
            assert ambiguous not in TOKEN_ALPHABET

    def test_tokens_differ(self):
        assert len({generate_token() for _ in range(50)}) == 50


class TestExpiry:
    def test_no_expiry(self):
        assert compute_expiry(None) is None
        assert compute_expiry(0) is None

    def test_expiry_offset(self):
        now = datetime(2026, 1, 1, 12, 0, 0)
        assert compute_expiry(7, now=now) == datetime(2026, 1, 8, 12, 0, 0)


class TestCheckLink:
    """Lookup outcome of a link: usable, not_found or expired."""

    def test_missing_link_not_found(self):
        assert check_link(None) == ShareLookupError.NOT_FOUND

    def test_revoked_link_not_found(self):
        link = SharedLink(token="abc", is_active=False)
        assert check_link(link) == ShareLookupError.NOT_FOUND

    def test_expired_link(self):
        now = datetime(2026, 5, 1)
        link = SharedLink(token="abc", is_active=True, expires_at=now - timedelta(seconds=1))
        assert check_link(link, now=now) == ShareLookupError.EXPIRED

    def test_active_link_usable(self):
        now = datetime(2026, 5, 1)
        assert check_link(SharedLink(token="abc", is_active=True, expires_at=None), now=now) is None
        link = SharedLink(token="abc", is_active=True, expires_at=now + timedelta(days=1))
        assert check_link(link, now=now) is None


class TestPermissions:
    def test_permission_ranking(self):
        assert permission_allows(SharePermission.EDIT, SharePermission.VIEW)
        assert permission_allows(SharePermission.COMMENT, SharePermission.COMMENT)
        assert not permission_allows(SharePermission.VIEW, SharePermission.COMMENT)
        assert permission_allows("comment", "view")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
