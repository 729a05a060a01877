"""
Trigger Gate

The batch run acts on every user's rules, so the only thing standing
between the outside world and a run is a shared secret. The gate checks
it before any store access happens.

The secret is handed to the gate at construction time. Nothing here
reads process environment while a request is being served.
"""

import hmac
from typing import Optional


class AuthorizationError(Exception):
    """Trigger credential missing or wrong."""
    pass


class TriggerGate:
    """Validates the credential carried by an inbound run request."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Trigger secret must not be empty")
        self._secret = secret.encode("utf-8")

    def is_authorized(self, credential: Optional[str]) -> bool:
        if not credential:
            return False
        # Constant-time comparison
        return hmac.compare_digest(credential.encode("utf-8"), self._secret)

    def check(self, credential: Optional[str]) -> None:
        """
        Raise AuthorizationError unless credential matches the secret.

        Raises:
            AuthorizationError: On a missing or mismatched credential
        """
        if not self.is_authorized(credential):
            raise AuthorizationError("Unauthorized")
