"""In-memory CloudNetworkClient for reconciler tests.

Records every call in order and supports failure injection per operation,
so tests can assert on both the resulting status and the exact sequence of
cloud calls a pass made.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from network_operator.cloud import CloudOperationError, CloudResourceNotFoundError


@dataclass
class FakeVpc:
    """A virtual network in fake cloud state."""

    vpc_id: str
    cidr_block: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class FakeSubnet:
    """A subnet in fake cloud state."""

    subnet_id: str
    vpc_id: str
    cidr_block: str


class FakeNetworkClient:
    """CloudNetworkClient with in-memory state and scripted failures."""

    def __init__(self) -> None:
        self.vpcs: dict[str, FakeVpc] = {}
        self.subnets: dict[str, FakeSubnet] = {}
        self.calls: list[tuple[str, ...]] = []
        self._failures: dict[str, list[str]] = {}
        self._counter = 0

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, message: str = "simulated failure", times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise CloudOperationError."""
        self._failures.setdefault(operation, []).extend([message] * times)

    def add_vpc(self, cidr_block: str, vpc_id: str | None = None) -> str:
        vpc_id = vpc_id or self._next_id("vpc")
        self.vpcs[vpc_id] = FakeVpc(vpc_id=vpc_id, cidr_block=cidr_block)
        return vpc_id

    def add_subnet(self, vpc_id: str, cidr_block: str, subnet_id: str | None = None) -> str:
        subnet_id = subnet_id or self._next_id("subnet")
        self.subnets[subnet_id] = FakeSubnet(
            subnet_id=subnet_id, vpc_id=vpc_id, cidr_block=cidr_block
        )
        return subnet_id

    def operations(self) -> list[str]:
        """Names of all calls made, in order."""
        return [call[0] for call in self.calls]

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:04d}"

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        pending = self._failures.get(operation)
        if pending:
            message = pending.pop(0)
            raise CloudOperationError(operation, args[0] if args else None, message)

    # ------------------------------------------------------------------
    # CloudNetworkClient
    # ------------------------------------------------------------------

    def create_vpc(self, cidr_block: str) -> str:
        self._record("create_vpc", cidr_block)
        return self.add_vpc(cidr_block)

    def tag_resource(self, resource_id: str, name: str) -> None:
        self._record("tag_resource", resource_id, name)
        if resource_id not in self.vpcs:
            raise CloudResourceNotFoundError("tag_resource", resource_id, "ResourceNotFound")
        self.vpcs[resource_id].tags["Name"] = name

    def create_subnet(self, vpc_id: str, cidr_block: str) -> str:
        self._record("create_subnet", vpc_id, cidr_block)
        if vpc_id not in self.vpcs:
            raise CloudResourceNotFoundError("create_subnet", vpc_id, "ResourceNotFound")
        return self.add_subnet(vpc_id, cidr_block)

    def describe_vpc_cidr(self, vpc_id: str) -> str:
        self._record("describe_vpc_cidr", vpc_id)
        if vpc_id not in self.vpcs:
            raise CloudResourceNotFoundError("describe_vpc_cidr", vpc_id, "ResourceNotFound")
        return self.vpcs[vpc_id].cidr_block

    def describe_subnet_cidr(self, subnet_id: str) -> str:
        self._record("describe_subnet_cidr", subnet_id)
        if subnet_id not in self.subnets:
            raise CloudResourceNotFoundError(
                "describe_subnet_cidr", subnet_id, "ResourceNotFound"
            )
        return self.subnets[subnet_id].cidr_block

    def delete_subnet(self, subnet_id: str) -> None:
        self._record("delete_subnet", subnet_id)
        self.subnets.pop(subnet_id, None)

    def delete_vpc(self, vpc_id: str) -> None:
        self._record("delete_vpc", vpc_id)
        if any(s.vpc_id == vpc_id for s in self.subnets.values()):
            raise CloudOperationError("delete_vpc", vpc_id, "InUseSubnetCannotBeDeleted")
        self.vpcs.pop(vpc_id, None)
