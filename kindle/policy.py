"""
Validation policies applied before identities are accepted.
"""

from typing import Iterable

from kindle.errors import PolicyViolationError

DISALLOWED_ADMIN_SUBSTRINGS = ("admin", "administrator")


def validate_admin_identity(
    identity: str,
    disallowed: Iterable[str] = DISALLOWED_ADMIN_SUBSTRINGS,
) -> str:
    """
    Reject an administrator login that contains a disallowed word.

    The comparison is a case-insensitive substring match. The value is
    returned unchanged when it passes; it is never rewritten.

    Raises:
        PolicyViolationError: identity is blank or contains a disallowed word
    """
    if not identity or not identity.strip():
        raise PolicyViolationError("Administrator username must not be empty")

    normalized = identity.lower()
    for word in disallowed:
        if word.lower() in normalized:
            raise PolicyViolationError(
                f"Administrator username {identity!r} must not contain {word!r}"
            )

    return identity
