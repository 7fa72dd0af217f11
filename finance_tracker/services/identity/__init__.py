"""Identity services package."""

from finance_tracker.services.identity.provider import (
    AuthenticationError,
    IdentityProvider,
    StaticIdentityProvider,
    UserIdentity,
)

__all__ = [
    "AuthenticationError",
    "IdentityProvider",
    "StaticIdentityProvider",
    "UserIdentity",
]
