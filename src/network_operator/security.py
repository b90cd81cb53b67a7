"""Managed identity credentials for the network operator.

The operator authenticates to Azure only through a managed identity. Any
environment variable that would enable secret-based authentication blocks
startup instead of being silently picked up by the Azure SDK.
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate secret-based authentication
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "Secret-based Azure credentials detected ({env_var}). "
    "The network operator authenticates with a managed identity only: "
    "remove the variable and assign a managed identity with Network "
    "Contributor rights on the target resource group."
)


class SecretlessViolationError(Exception):
    """Raised when credential secrets are present in the environment."""

    pass


def enforce_secretless_architecture() -> None:
    """Refuse to continue when credential secrets are in the environment.

    Raises:
        SecretlessViolationError: If any forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Secret-based credential detected",
                extra={"security_event": "credential_detected", "env_var": env_var},
            )
            raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=env_var))


def get_managed_identity_credential(
    client_id: str | None = None,
) -> ManagedIdentityCredential:
    """Return a ManagedIdentityCredential after checking the environment.

    Args:
        client_id: Client ID of a user-assigned identity. None selects the
            system-assigned identity.

    Raises:
        SecretlessViolationError: If credential env vars are present.
    """
    enforce_secretless_architecture()

    if client_id:
        logger.info(
            "Using user-assigned managed identity",
            extra={"client_id": client_id[:8] + "..." if len(client_id) > 8 else client_id},
        )
        return ManagedIdentityCredential(client_id=client_id)

    logger.info("Using system-assigned managed identity")
    return ManagedIdentityCredential()
