from typing import Protocol

from medbook.domain.models import Identity


class TokenVerifier(Protocol):
    """Turns a bearer credential into a verified caller identity."""

    async def verify(self, token: str) -> Identity:
        """Verify ``token`` and return the subject it was issued to.

        Raises:
            AuthenticationError: If the token is malformed, expired or not
                signed by the identity provider.
            IdentityUnavailableError: If the identity provider cannot be reached.
        """
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
