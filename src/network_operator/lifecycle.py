"""Lifecycle state machine for virtual network status records.

Every change the reconciler makes to a status goes through ``transition``:
the edge is checked against ``ALLOWED_TRANSITIONS``, the field updates are
applied to a copy, and the result is checked against the status invariants.
Error is reachable from every state and is never terminal; the next pass
resumes from whatever IDs were persisted.
"""

from __future__ import annotations

import logging
from typing import Any

from .models import LifecycleState, NetworkStatus

logger = logging.getLogger(__name__)

_S = LifecycleState

# Self-loops on Creating/Deleting/Deleted cover passes that resume a step
# persisted by a checkpoint before the process stopped.
ALLOWED_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    _S.ABSENT: frozenset({_S.CREATING, _S.DELETED, _S.ERROR}),
    _S.CREATING: frozenset({_S.CREATING, _S.CREATED, _S.UPDATED, _S.DELETING, _S.ERROR}),
    _S.CREATED: frozenset({_S.UPDATED, _S.DELETING, _S.ERROR}),
    _S.UPDATED: frozenset({_S.UPDATED, _S.DELETING, _S.ERROR}),
    _S.DELETING: frozenset({_S.DELETING, _S.DELETED, _S.UPDATED, _S.ERROR}),
    _S.DELETED: frozenset({_S.CREATING, _S.DELETED, _S.ERROR}),
    _S.ERROR: frozenset(
        {_S.CREATING, _S.UPDATED, _S.DELETING, _S.DELETED, _S.ERROR}
    ),
}


class LifecycleError(Exception):
    """Base class for state machine violations."""

    pass


class InvalidTransitionError(LifecycleError):
    """Raised when a transition is not in ALLOWED_TRANSITIONS."""

    def __init__(self, source: LifecycleState, target: LifecycleState) -> None:
        self.source = source
        self.target = target
        super().__init__(f"Transition {source.value} -> {target.value} is not allowed")


class StatusInvariantError(LifecycleError):
    """Raised when a status violates a structural invariant."""

    pass


def check_invariants(status: NetworkStatus) -> None:
    """Validate the structural invariants of a status record.

    Raises:
        StatusInvariantError: On the first violated invariant.
    """
    if status.subnet_id and not status.vpc_id:
        raise StatusInvariantError("subnetId is set without a vpcId")

    if status.state == LifecycleState.ABSENT and (status.vpc_id or status.subnet_id):
        raise StatusInvariantError("Absent status must not carry resource IDs")

    if status.state == LifecycleState.CREATED:
        if not (status.vpc_id and status.subnet_id):
            raise StatusInvariantError("Created status requires both vpcId and subnetId")
        if status.error_message:
            raise StatusInvariantError("Created status must not carry an error message")

    if status.state == LifecycleState.DELETED and (status.vpc_id or status.subnet_id):
        raise StatusInvariantError("Deleted status must not carry resource IDs")


def can_transition(source: LifecycleState, target: LifecycleState) -> bool:
    """Check whether ``source -> target`` is an allowed edge."""
    return target in ALLOWED_TRANSITIONS[source]


def transition(
    status: NetworkStatus,
    target: LifecycleState,
    **changes: Any,
) -> NetworkStatus:
    """Move a status to ``target``, applying field changes.

    Any transition other than one into Error clears ``error_message`` unless
    the caller passes one explicitly.

    Args:
        status: Current status value (left untouched).
        target: Target lifecycle state.
        **changes: Field updates by attribute name (vpc_id, subnet_id,
            error_message).

    Returns:
        New status value.

    Raises:
        InvalidTransitionError: If the edge is not allowed.
        StatusInvariantError: If the resulting status is inconsistent.
    """
    if not can_transition(status.state, target):
        raise InvalidTransitionError(status.state, target)

    update: dict[str, Any] = {"state": target}
    if target != LifecycleState.ERROR:
        update["error_message"] = ""
    update.update(changes)

    new_status = status.model_copy(update=update)
    check_invariants(new_status)

    if new_status.state != status.state:
        logger.debug(
            "Lifecycle transition",
            extra={
                "from_state": status.state.value,
                "to_state": new_status.state.value,
                "vpc_id": new_status.vpc_id,
                "subnet_id": new_status.subnet_id,
            },
        )
    return new_status


def fail(status: NetworkStatus, error: Exception) -> NetworkStatus:
    """Record a failed cloud call, keeping every ID achieved so far."""
    return transition(status, LifecycleState.ERROR, error_message=str(error))
