"""Convergence of one virtual network resource.

A pass takes the desired spec and the last persisted status and returns a
new status plus the error that stopped it, if any:

- no VPC ID yet: create path (create network, tag it, create subnet)
- VPC ID present: converge path (check network CIDR, re-tag, check subnet)
- network CIDR drifted: recreate (delete subnet, delete network, create path)
- recorded network or subnet missing in the cloud: treated as deleted and created again
- explicit deletion: teardown (delete subnet, delete network)

The reconciler holds no state between passes. Every completed cloud call is
reflected in the returned status, so a pass that stops halfway leaves a
status the next pass resumes from instead of starting over. Failures are
never retried here; the caller re-triggers the pass.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .cloud import CloudNetworkClient, CloudOperationError, CloudResourceNotFoundError
from .drift import check_cidr
from .lifecycle import fail, transition
from .models import LifecycleState, NetworkSpec, NetworkStatus

logger = logging.getLogger(__name__)

# Receives the status after every completed cloud mutation. Errors it raises
# are not caught here and propagate out of reconcile() and delete().
Checkpoint = Callable[[NetworkStatus], None]


class ReconcileAction(str, Enum):
    """Which branch a pass took."""

    CREATE = "create"
    CONVERGE = "converge"
    RECREATE = "recreate"
    DELETE = "delete"


@dataclass
class ReconcileOutcome:
    """Result of a single pass."""

    status: NetworkStatus
    action: ReconcileAction
    error: CloudOperationError | None = None
    operations: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None


class _PassAborted(Exception):
    """Carries the failed status out of a nested step."""

    def __init__(self, status: NetworkStatus, error: CloudOperationError) -> None:
        super().__init__(str(error))
        self.status = status
        self.error = error


class NetworkReconciler:
    """Runs convergence passes against one cloud client."""

    def __init__(self, client: CloudNetworkClient, checkpoint: Checkpoint | None = None) -> None:
        self._client = client
        self._checkpoint = checkpoint
        self._operations: list[str] = []
        self._action = ReconcileAction.CONVERGE

    def reconcile(self, desired: NetworkSpec, observed: NetworkStatus) -> ReconcileOutcome:
        """Run one convergence pass.

        Args:
            desired: Declared network configuration.
            observed: Last persisted status.

        Returns:
            ReconcileOutcome with the new status and the error, if any.
        """
        self._operations = []
        try:
            if not observed.vpc_id:
                self._action = ReconcileAction.CREATE
                status = self._create(desired, observed)
            else:
                self._action = ReconcileAction.CONVERGE
                status = self._converge(desired, observed)
        except _PassAborted as aborted:
            return self._outcome(aborted.status, aborted.error)
        return self._outcome(status, None)

    def delete(self, observed: NetworkStatus) -> ReconcileOutcome:
        """Tear down the subnet, then the network.

        Deleting a status without IDs only records the Deleted state.
        """
        self._operations = []
        self._action = ReconcileAction.DELETE
        try:
            status = self._teardown(observed)
        except _PassAborted as aborted:
            return self._outcome(aborted.status, aborted.error)
        return self._outcome(status, None)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _create(self, desired: NetworkSpec, status: NetworkStatus) -> NetworkStatus:
        vpc_id = self._run(status, "create_vpc", lambda: self._client.create_vpc(desired.cidr_block))
        status = self._save(transition(status, LifecycleState.CREATING, vpc_id=vpc_id))

        self._run(status, "tag_resource", lambda: self._client.tag_resource(vpc_id, desired.name))

        subnet_id = self._run(
            status,
            "create_subnet",
            lambda: self._client.create_subnet(vpc_id, desired.subnet_cidr),
        )
        status = self._save(transition(status, LifecycleState.CREATED, subnet_id=subnet_id))
        logger.info(
            "Network created",
            extra={"vpc_id": vpc_id, "subnet_id": subnet_id, "name": desired.name},
        )
        return status

    def _converge(self, desired: NetworkSpec, status: NetworkStatus) -> NetworkStatus:
        vpc_id = status.vpc_id
        live_cidr = self._describe(
            status, "describe_vpc_cidr", lambda: self._client.describe_vpc_cidr(vpc_id)
        )
        if live_cidr is None:
            # Gone already, e.g. deleted by a teardown that stopped before recording it
            logger.warning("Virtual network not found, recreating", extra={"vpc_id": vpc_id})
            self._action = ReconcileAction.RECREATE
            status = transition(status, LifecycleState.DELETING)
            status = self._save(
                transition(status, LifecycleState.DELETED, vpc_id="", subnet_id="")
            )
            return self._create(desired, status)

        if check_cidr("vpc", vpc_id, live_cidr, desired.cidr_block).drifted:
            # CIDR is immutable on a live network: replace the whole chain
            self._action = ReconcileAction.RECREATE
            status = self._teardown(status)
            return self._create(desired, status)

        self._run(status, "tag_resource", lambda: self._client.tag_resource(vpc_id, desired.name))

        if status.subnet_id:
            subnet_id = status.subnet_id
            live_subnet_cidr = self._describe(
                status,
                "describe_subnet_cidr",
                lambda: self._client.describe_subnet_cidr(subnet_id),
            )
            if live_subnet_cidr is None:
                logger.warning(
                    "Subnet not found, creating a new one",
                    extra={"vpc_id": vpc_id, "subnet_id": subnet_id},
                )
                status = self._save(transition(status, LifecycleState.DELETING, subnet_id=""))
            elif check_cidr("subnet", subnet_id, live_subnet_cidr, desired.subnet_cidr).drifted:
                self._run(status, "delete_subnet", lambda: self._client.delete_subnet(subnet_id))
                status = self._save(transition(status, LifecycleState.DELETING, subnet_id=""))
            else:
                return transition(status, LifecycleState.UPDATED)

        # No subnet recorded: partial create, interrupted teardown or replacement
        new_subnet_id = self._run(
            status,
            "create_subnet",
            lambda: self._client.create_subnet(vpc_id, desired.subnet_cidr),
        )
        status = self._save(transition(status, LifecycleState.UPDATED, subnet_id=new_subnet_id))
        logger.info("Subnet created", extra={"vpc_id": vpc_id, "subnet_id": new_subnet_id})
        return status

    def _teardown(self, status: NetworkStatus) -> NetworkStatus:
        if not status.vpc_id:
            return transition(status, LifecycleState.DELETED, subnet_id="")

        # Step 1: the subnet blocks deletion of its network
        status = transition(status, LifecycleState.DELETING)
        if status.subnet_id:
            subnet_id = status.subnet_id
            self._run(status, "delete_subnet", lambda: self._client.delete_subnet(subnet_id))
            status = self._save(transition(status, LifecycleState.DELETING, subnet_id=""))

        # Step 2: a failure here leaves vpc_id set and subnet_id cleared
        vpc_id = status.vpc_id
        self._run(status, "delete_vpc", lambda: self._client.delete_vpc(vpc_id))
        status = self._save(transition(status, LifecycleState.DELETED, vpc_id=""))
        logger.info("Network deleted", extra={"vpc_id": vpc_id})
        return status

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, status: NetworkStatus, operation: str, call: Callable[[], str | None]) -> str:
        """Invoke one cloud call; on failure abort the pass with ``status`` in Error."""
        try:
            result = call()
        except CloudOperationError as e:
            self._operations.append(f"{operation}:failed")
            raise _PassAborted(fail(status, e), e) from e
        self._operations.append(operation)
        return result or ""

    def _describe(
        self, status: NetworkStatus, operation: str, call: Callable[[], str]
    ) -> str | None:
        """Like ``_run`` for a read, but returns None when the resource is gone."""
        try:
            result = call()
        except CloudResourceNotFoundError:
            self._operations.append(f"{operation}:missing")
            return None
        except CloudOperationError as e:
            self._operations.append(f"{operation}:failed")
            raise _PassAborted(fail(status, e), e) from e
        self._operations.append(operation)
        return result

    def _save(self, status: NetworkStatus) -> NetworkStatus:
        if self._checkpoint is not None:
            self._checkpoint(status)
        return status

    def _outcome(self, status: NetworkStatus, error: CloudOperationError | None) -> ReconcileOutcome:
        log = logger.warning if error else logger.info
        log(
            "Reconcile pass finished",
            extra={
                "action": self._action.value,
                "state": status.state.value,
                "vpc_id": status.vpc_id,
                "subnet_id": status.subnet_id,
                "error": str(error) if error else None,
            },
        )
        return ReconcileOutcome(
            status=status,
            action=self._action,
            error=error,
            operations=list(self._operations),
        )
