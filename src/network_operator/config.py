"""Configuration management with validation.

All settings come from environment variables and are validated when the
Config is constructed, so a misconfigured operator fails at startup rather
than halfway through a reconcile pass.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_RECONCILE_INTERVAL_SECONDS = 60
MIN_RECONCILE_INTERVAL_SECONDS = 5
MAX_RECONCILE_INTERVAL_SECONDS = 3600

DEFAULT_PASS_TIMEOUT_SECONDS = 900
MIN_PASS_TIMEOUT_SECONDS = 30
MAX_PASS_TIMEOUT_SECONDS = 7200

DEFAULT_REQUEUE_BACKOFF_BASE_SECONDS = 5
DEFAULT_REQUEUE_BACKOFF_MAX_SECONDS = 300

# ARM API version used for Microsoft.Network generic resource calls
NETWORK_API_VERSION = "2023-09-01"

MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest
MAX_STATUS_FILE_SIZE_BYTES = 64 * 1024
MAX_RESOURCE_GROUP_NAME_LENGTH = 90

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_RESOURCE_GROUP_PATTERN = r"^[-\w._()]+$"
VALID_RESOURCE_KEY_PATTERN = r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    subscription_id: str
    resource_group_name: str

    # Paths
    specs_dir: Path = field(default_factory=lambda: Path("/specs"))
    status_dir: Path = field(default_factory=lambda: Path("/status"))

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    pass_timeout_seconds: int = DEFAULT_PASS_TIMEOUT_SECONDS
    requeue_backoff_base_seconds: int = DEFAULT_REQUEUE_BACKOFF_BASE_SECONDS
    requeue_backoff_max_seconds: int = DEFAULT_REQUEUE_BACKOFF_MAX_SECONDS

    # Identity
    managed_identity_client_id: str | None = None

    # Emit one structured provenance record per reconcile pass
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        if not self.resource_group_name:
            errors.append("RESOURCE_GROUP_NAME is required")
        elif len(self.resource_group_name) > MAX_RESOURCE_GROUP_NAME_LENGTH:
            errors.append(
                f"RESOURCE_GROUP_NAME exceeds maximum length of {MAX_RESOURCE_GROUP_NAME_LENGTH}"
            )
        elif not re.match(VALID_RESOURCE_GROUP_PATTERN, self.resource_group_name):
            errors.append(f"RESOURCE_GROUP_NAME contains invalid characters: {self.resource_group_name}")

        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        if not MIN_PASS_TIMEOUT_SECONDS <= self.pass_timeout_seconds <= MAX_PASS_TIMEOUT_SECONDS:
            errors.append(
                f"PASS_TIMEOUT must be between {MIN_PASS_TIMEOUT_SECONDS} "
                f"and {MAX_PASS_TIMEOUT_SECONDS} seconds"
            )

        if self.requeue_backoff_base_seconds < 1:
            errors.append("REQUEUE_BACKOFF_BASE must be at least 1 second")
        elif self.requeue_backoff_max_seconds < self.requeue_backoff_base_seconds:
            errors.append("REQUEUE_BACKOFF_MAX must not be lower than REQUEUE_BACKOFF_BASE")

        if not self.specs_dir.exists():
            errors.append(f"Specs directory does not exist: {self.specs_dir}")

        # status_dir is created on first write; it only has to not be a file
        if self.status_dir.exists() and not self.status_dir.is_dir():
            errors.append(f"Status path is not a directory: {self.status_dir}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription that owns the virtual networks
            RESOURCE_GROUP_NAME: Resource group the networks are created in
            SPECS_DIR: Path to network manifests (default: /specs)
            STATUS_DIR: Path where status records are persisted (default: /status)
            RECONCILE_INTERVAL: Seconds between resync loops (default: 60)
            PASS_TIMEOUT: Seconds before a single pass is abandoned (default: 900)
            REQUEUE_BACKOFF_BASE: First retry delay after a failed pass (default: 5)
            REQUEUE_BACKOFF_MAX: Upper bound for the retry delay (default: 300)
            AZURE_CLIENT_ID: Client ID of a user-assigned managed identity
            ENABLE_AUDIT_LOGGING: Emit per-pass provenance records (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            resource_group_name=os.environ.get("RESOURCE_GROUP_NAME", ""),
            specs_dir=Path(os.environ.get("SPECS_DIR", "/specs")),
            status_dir=Path(os.environ.get("STATUS_DIR", "/status")),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            pass_timeout_seconds=get_int("PASS_TIMEOUT", DEFAULT_PASS_TIMEOUT_SECONDS),
            requeue_backoff_base_seconds=get_int(
                "REQUEUE_BACKOFF_BASE", DEFAULT_REQUEUE_BACKOFF_BASE_SECONDS
            ),
            requeue_backoff_max_seconds=get_int(
                "REQUEUE_BACKOFF_MAX", DEFAULT_REQUEUE_BACKOFF_MAX_SECONDS
            ),
            managed_identity_client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
