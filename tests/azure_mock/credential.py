"""Mock managed identity credential.

Hands out fake tokens without Azure connectivity and records which
identity was requested, so tests can assert on user- vs system-assigned
identity selection.
"""

from __future__ import annotations

import time
from typing import Any

from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError

TOKEN_VALIDITY_SECONDS = 3600


class MockManagedIdentityCredential:
    """Stand-in for azure.identity.ManagedIdentityCredential."""

    def __init__(self, client_id: str | None = None) -> None:
        self._client_id = client_id
        self._scopes_requested: list[tuple[str, ...]] = []
        self._failure: str | None = None

    @property
    def client_id(self) -> str | None:
        return self._client_id

    @property
    def get_token_call_count(self) -> int:
        return len(self._scopes_requested)

    def set_failure(self, should_fail: bool, message: str = "Authentication failed") -> None:
        """Make subsequent get_token calls raise ClientAuthenticationError."""
        self._failure = message if should_fail else None

    def get_token(self, *scopes: str, **_kwargs: Any) -> AccessToken:
        self._scopes_requested.append(scopes)
        if self._failure:
            raise ClientAuthenticationError(message=self._failure)

        identity = self._client_id or "system-assigned"
        token = f"mock-token-{len(self._scopes_requested)}-{identity}"
        return AccessToken(token, int(time.time()) + TOKEN_VALIDITY_SECONDS)

    def close(self) -> None:
        pass

    def __enter__(self) -> MockManagedIdentityCredential:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def create_mock_credential(client_id: str | None = None) -> MockManagedIdentityCredential:
    return MockManagedIdentityCredential(client_id=client_id)
