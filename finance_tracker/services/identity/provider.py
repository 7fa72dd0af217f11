"""
Identity Provider Interface

Authentication itself is delegated to an external identity provider.
The flows only need to know whose collections they are touching, so
they receive an IdentityProvider and ask it for the current user.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserIdentity(BaseModel):
    """The signed-in user, as reported by the identity provider."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
    display_name: Optional[str] = None


class IdentityProvider(ABC):
    """Source of the current session's user."""

    @abstractmethod
    async def current_user(self) -> UserIdentity:
        """
        Return the signed-in user.

        Raises:
            AuthenticationError: If there is no active session
        """
        pass


class StaticIdentityProvider(IdentityProvider):
    """
    Always the same user.

    For single-user deployments and tests. Pass None to model a
    signed-out session.
    """

    def __init__(self, user_id: Optional[str], email: Optional[str] = None):
        self._user = UserIdentity(user_id=user_id, email=email) if user_id else None

    async def current_user(self) -> UserIdentity:
        if self._user is None:
            raise AuthenticationError("You need to be signed in to do this")
        return self._user


class AuthenticationError(Exception):
    """No authenticated user for an operation that needs one."""
    pass
