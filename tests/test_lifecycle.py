"""Tests for the lifecycle state machine."""

import pytest

from network_operator.lifecycle import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    StatusInvariantError,
    can_transition,
    check_invariants,
    fail,
    transition,
)
from network_operator.models import LifecycleState, NetworkStatus


class TestAllowedTransitions:
    """Tests for the transition table."""

    def test_every_state_has_entry(self) -> None:
        """Test that the table covers every lifecycle state."""
        assert set(ALLOWED_TRANSITIONS) == set(LifecycleState)

    def test_error_reachable_from_everywhere(self) -> None:
        """Test that any state can move to Error."""
        for state in LifecycleState:
            assert can_transition(state, LifecycleState.ERROR)

    def test_error_is_not_terminal(self) -> None:
        """Test that Error can be left for progress states."""
        assert can_transition(LifecycleState.ERROR, LifecycleState.UPDATED)
        assert can_transition(LifecycleState.ERROR, LifecycleState.CREATING)

    def test_created_cannot_return_to_creating(self) -> None:
        """Test that a converged network is never recreated without a teardown."""
        assert not can_transition(LifecycleState.CREATED, LifecycleState.CREATING)
        assert not can_transition(LifecycleState.UPDATED, LifecycleState.CREATING)

    def test_absent_cannot_jump_to_created(self) -> None:
        """Test that Created requires passing through Creating."""
        assert not can_transition(LifecycleState.ABSENT, LifecycleState.CREATED)


class TestTransition:
    """Tests for transition()."""

    def test_applies_changes_to_copy(self) -> None:
        """Test that transition returns a new status and leaves the input alone."""
        status = NetworkStatus()

        new_status = transition(status, LifecycleState.CREATING, vpc_id="vnet-1")

        assert new_status.state == LifecycleState.CREATING
        assert new_status.vpc_id == "vnet-1"
        assert status.state == LifecycleState.ABSENT
        assert status.vpc_id == ""

    def test_clears_error_message(self) -> None:
        """Test that leaving Error clears the error message."""
        status = NetworkStatus(
            vpc_id="vnet-1", state=LifecycleState.ERROR, error_message="earlier failure"
        )

        new_status = transition(status, LifecycleState.UPDATED)

        assert new_status.error_message == ""

    def test_rejects_invalid_edge(self) -> None:
        """Test that a disallowed edge raises InvalidTransitionError."""
        status = NetworkStatus(vpc_id="vnet-1", subnet_id="snet-1", state=LifecycleState.CREATED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(status, LifecycleState.CREATING)

        assert exc_info.value.source == LifecycleState.CREATED
        assert exc_info.value.target == LifecycleState.CREATING

    def test_rejects_created_without_subnet(self) -> None:
        """Test that Created requires both IDs."""
        status = NetworkStatus(vpc_id="vnet-1", state=LifecycleState.CREATING)

        with pytest.raises(StatusInvariantError):
            transition(status, LifecycleState.CREATED)

    def test_rejects_deleted_with_ids(self) -> None:
        """Test that Deleted must not keep resource IDs."""
        status = NetworkStatus(vpc_id="vnet-1", state=LifecycleState.DELETING)

        with pytest.raises(StatusInvariantError):
            transition(status, LifecycleState.DELETED)

    def test_fail_keeps_ids(self) -> None:
        """Test that fail() records the error and keeps achieved IDs."""
        status = NetworkStatus(vpc_id="vnet-1", state=LifecycleState.CREATING)

        failed = fail(status, RuntimeError("create_subnet failed"))

        assert failed.state == LifecycleState.ERROR
        assert failed.vpc_id == "vnet-1"
        assert failed.error_message == "create_subnet failed"


class TestInvariants:
    """Tests for check_invariants()."""

    def test_subnet_without_vpc(self) -> None:
        """Test that a subnet ID requires a VPC ID."""
        with pytest.raises(StatusInvariantError):
            check_invariants(NetworkStatus(subnet_id="snet-1", state=LifecycleState.ERROR))

    def test_absent_with_ids(self) -> None:
        """Test that Absent must not carry IDs."""
        with pytest.raises(StatusInvariantError):
            check_invariants(NetworkStatus(vpc_id="vnet-1"))

    def test_error_may_carry_partial_ids(self) -> None:
        """Test that Error may hold a VPC ID without a subnet."""
        check_invariants(
            NetworkStatus(vpc_id="vnet-1", state=LifecycleState.ERROR, error_message="boom")
        )
