"""Azure API Mock for Integration Testing.

This module provides a mock implementation of the Azure Resource Manager
generic resource API so the Azure network client, the controller and the
CLI can be tested without Azure connectivity.

Key Features:
- In-memory state for virtual networks and subnets, keyed by ARM ID
- Parent/child checks (subnet needs its network, network deletion blocked by subnets)
- Error injection per operation for testing failure scenarios
- Managed Identity simulation

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        factory = azure_client_factory(config)
        client = factory("westeurope")
        vpc_id = client.create_vpc("10.0.0.0/16")

        assert ctx.get_resource_count() == 1
"""

from .context import MockAzureContext, mock_azure_context
from .credential import MockManagedIdentityCredential, create_mock_credential
from .resources import MockResource, MockResourceClient, MockResourceState

__all__ = [
    "MockAzureContext",
    "MockManagedIdentityCredential",
    "MockResource",
    "MockResourceClient",
    "MockResourceState",
    "create_mock_credential",
    "mock_azure_context",
]
