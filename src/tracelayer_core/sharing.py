"""Share-token generation and lookup rules for public BRD snapshots.

A share token is the sole authorization mechanism for the public view: no
session or identity is involved. Lookup outcomes are:

- ``not_found``: unknown token, revoked link, or the project is gone
- ``expired``: the link carries an expiry timestamp in the past
- otherwise the link is usable
"""
import enum
import secrets
from datetime import datetime, timedelta
from typing import Optional

from .models import SharedLink, SharePermission

# Unambiguous characters only (no 0/O, 1/l/I)
TOKEN_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"

PERMISSION_RANK: dict[SharePermission, int] = {
    SharePermission.VIEW: 0,
    SharePermission.COMMENT: 1,
    SharePermission.EDIT: 2,
}


class ShareLookupError(str, enum.Enum):
    """Error codes returned by a token lookup."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"


def generate_token(length: int = 12) -> str:
    """Generate a random share token."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def compute_expiry(expires_in_days: Optional[float], now: Optional[datetime] = None) -> Optional[datetime]:
    """Expiry timestamp for a link, None when the link never expires."""
    if not expires_in_days:
        return None
    now = now or datetime.utcnow()
    return now + timedelta(days=expires_in_days)


def check_link(link: Optional[SharedLink], now: Optional[datetime] = None) -> Optional[ShareLookupError]:
    """
    Decide whether a link can be used.

    Args:
        link: The link found for the token, or None
        now: Reference time (defaults to utcnow)

    Returns:
        None when usable, otherwise the lookup error
    """
    if link is None or not link.is_active:
        return ShareLookupError.NOT_FOUND
    now = now or datetime.utcnow()
    if link.expires_at is not None and now > link.expires_at:
        return ShareLookupError.EXPIRED
    return None


def permission_allows(granted: SharePermission, required: SharePermission) -> bool:
    """True when the granted permission is at least the required one."""
    return PERMISSION_RANK[SharePermission(granted)] >= PERMISSION_RANK[SharePermission(required)]
