"""Drift detection between declared and live CIDR blocks.

CIDR blocks are compared as exact strings. Two notations of the same range
(``10.0.0.0/16`` vs ``10.0.0.1/16``) still count as drift, which costs an
unnecessary recreate but never leaves a divergence unnoticed. When that case
occurs a warning is logged so the spurious recreate can be traced.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftCheck:
    """Result of comparing one live CIDR against its declared value."""

    resource: str
    resource_id: str
    expected: str
    actual: str

    @property
    def drifted(self) -> bool:
        return has_drift(self.actual, self.expected)


def has_drift(live_cidr: str, desired_cidr: str) -> bool:
    """Return True when the live CIDR differs from the declared one."""
    return live_cidr != desired_cidr


def same_range(a: str, b: str) -> bool:
    """Return True when two CIDR strings denote the same address range."""
    try:
        return ipaddress.ip_network(a, strict=False) == ipaddress.ip_network(b, strict=False)
    except ValueError:
        return False


def check_cidr(resource: str, resource_id: str, live_cidr: str, desired_cidr: str) -> DriftCheck:
    """Compare a live CIDR with the declared one and log the outcome."""
    check = DriftCheck(
        resource=resource,
        resource_id=resource_id,
        expected=desired_cidr,
        actual=live_cidr,
    )
    if not check.drifted:
        return check

    if same_range(live_cidr, desired_cidr):
        logger.warning(
            "CIDR notation differs but denotes the same range, treating as drift",
            extra={
                "resource": resource,
                "resource_id": resource_id,
                "live_cidr": live_cidr,
                "desired_cidr": desired_cidr,
            },
        )
    else:
        logger.info(
            "CIDR drift detected",
            extra={
                "resource": resource,
                "resource_id": resource_id,
                "live_cidr": live_cidr,
                "desired_cidr": desired_cidr,
            },
        )
    return check
