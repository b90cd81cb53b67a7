"""Per-pass provenance records for audit.

Every reconcile pass is stamped with what it started from, what it did and
where it ended, so questions like "which pass replaced this subnet?" or
"when did this network first go into Error?" can be answered from the logs.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from .models import NetworkStatus
from .reconciler import ReconcileOutcome

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
OPERATOR_VERSION = os.environ.get("OPERATOR_VERSION", "dev")


@dataclass
class PassProvenance:
    """Provenance record for one reconcile pass."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    key: str = ""
    operator_version: str = OPERATOR_VERSION
    operator_instance_id: str = ""

    # Source of truth
    git_commit_sha: str = ""

    # Outcome
    action: str = ""
    state_before: str = ""
    state_after: str = ""
    vpc_id_before: str = ""
    vpc_id_after: str = ""
    subnet_id_before: str = ""
    subnet_id_after: str = ""
    operations: list[str] = field(default_factory=list)

    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    @property
    def identity_changed(self) -> bool:
        """True when the pass replaced the network or the subnet."""
        return (
            self.vpc_id_before != self.vpc_id_after
            or self.subnet_id_before != self.subnet_id_after
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        result["identity_changed"] = self.identity_changed
        return result


class ProvenanceLogger:
    """Builds and logs PassProvenance records."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._instance_id = os.environ.get("CONTAINER_INSTANCE_ID", "")

    def record(
        self,
        key: str,
        observed: NetworkStatus,
        outcome: ReconcileOutcome,
        duration_seconds: float,
    ) -> PassProvenance:
        """Build the provenance record of a finished pass."""
        provenance = PassProvenance(
            key=key,
            operator_instance_id=self._instance_id,
            git_commit_sha=self._git_commit_sha,
            action=outcome.action.value,
            state_before=observed.state.value,
            state_after=outcome.status.state.value,
            vpc_id_before=observed.vpc_id,
            vpc_id_after=outcome.status.vpc_id,
            subnet_id_before=observed.subnet_id,
            subnet_id_after=outcome.status.subnet_id,
            operations=list(outcome.operations),
            duration_seconds=duration_seconds,
        )
        if outcome.error is not None:
            provenance.error = str(outcome.error)
            provenance.error_type = type(outcome.error).__name__
        return provenance

    def log_provenance(self, provenance: PassProvenance) -> None:
        """Log a completed provenance record, at ERROR level for failed passes."""
        log_level = logging.ERROR if provenance.error else logging.INFO

        logger.log(
            log_level,
            "Reconcile provenance",
            extra={
                "provenance": provenance.to_dict(),
                "key": provenance.key,
                "action": provenance.action,
                "state_after": provenance.state_after,
                "identity_changed": provenance.identity_changed,
                "git_commit": provenance.git_commit_sha,
                "duration_seconds": provenance.duration_seconds,
            },
        )


_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
