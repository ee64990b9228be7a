"""
Identity adapter boundary.

Wraps an external ``deriveIdentity`` capability. No key derivation happens
here: the port only checks that what comes back is usable and keeps the
secret out of logs and reprs.
"""

from __future__ import annotations

import logging

from .exceptions import ErrorKind, SignalError
from .interfaces import IdentityProvider
from .types import Commitment, Identity, short_hex

logger = logging.getLogger(__name__)


class IdentityPort:
    """
    Adapter around an IdentityProvider.

    Example:
        >>> port = IdentityPort(provider)
        >>> identity = port.derive(challenge)
        >>> port.commitment_for(challenge)
    """

    def __init__(self, provider: IdentityProvider) -> None:
        if not isinstance(provider, IdentityProvider):
            raise TypeError("provider must implement derive_identity()")
        self._provider = provider

    def derive(self, challenge: bytes) -> Identity:
        """
        Run the external ceremony for ``challenge``.

        Raises:
            SignalError: MALFORMED_REQUEST if the provider returns something
                other than an Identity with a well-formed commitment
        """
        if not isinstance(challenge, (bytes, bytearray)) or not challenge:
            raise ValueError("challenge must be non-empty bytes")
        identity = self._provider.derive_identity(bytes(challenge))
        if not isinstance(identity, Identity):
            raise SignalError(
                ErrorKind.MALFORMED_REQUEST, "identity provider returned no Identity"
            )
        logger.debug("Derived identity with commitment %s", short_hex(identity.commitment.value))
        return identity

    def commitment_for(self, challenge: bytes) -> Commitment:
        """Public half only, for registration."""
        return self.derive(challenge).commitment
