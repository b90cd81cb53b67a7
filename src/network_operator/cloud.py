"""Cloud network capability and its Azure Resource Manager implementation.

The reconciler only sees ``CloudNetworkClient``: seven blocking calls, each
either returning a value or raising ``CloudOperationError``. No call retries
on its own; retries come from the controller re-queueing the whole pass.
Calls addressing a resource that does not exist raise the subclass
``CloudResourceNotFoundError``; deletes of a missing resource succeed.

``AzureNetworkClient`` maps the capability onto ARM generic resource
operations of ``ResourceManagementClient``:

- "VPC"    -> Microsoft.Network/virtualNetworks/{name}
- subnet   -> Microsoft.Network/virtualNetworks/{name}/subnets/{name}
- tag      -> PATCH of the ``Name`` tag on the virtual network
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import GenericResource

from .config import NETWORK_API_VERSION, Config
from .security import get_managed_identity_credential

logger = logging.getLogger(__name__)

NAME_TAG = "Name"
VNET_NAME_PREFIX = "vnet"
SUBNET_NAME_PREFIX = "snet"


class CloudOperationError(Exception):
    """A single cloud call failed.

    Transient and terminal failures are not distinguished; the message is
    what ends up in the status record's ``errorMessage``.
    """

    def __init__(self, operation: str, resource_id: str | None, message: str) -> None:
        self.operation = operation
        self.resource_id = resource_id
        self.message = message
        target = f" ({resource_id})" if resource_id else ""
        super().__init__(f"{operation}{target} failed: {message}")


class CloudResourceNotFoundError(CloudOperationError):
    """The resource a call addressed does not exist."""

    pass


class CloudNetworkClient(Protocol):
    """Capability consumed by the reconciler. Every method blocks."""

    def create_vpc(self, cidr_block: str) -> str: ...

    def tag_resource(self, resource_id: str, name: str) -> None: ...

    def create_subnet(self, vpc_id: str, cidr_block: str) -> str: ...

    def describe_vpc_cidr(self, vpc_id: str) -> str: ...

    def describe_subnet_cidr(self, subnet_id: str) -> str: ...

    def delete_subnet(self, subnet_id: str) -> None: ...

    def delete_vpc(self, vpc_id: str) -> None: ...


# Builds a client bound to one region (Azure location)
CloudClientFactory = Callable[[str], CloudNetworkClient]


def _describe_error(e: AzureError) -> str:
    if isinstance(e, HttpResponseError) and e.error is not None and e.error.code:
        return f"{e.error.code}: {e.error.message}"
    return e.message or str(e)


class AzureNetworkClient:
    """CloudNetworkClient backed by ARM generic resource operations."""

    def __init__(
        self,
        client: ResourceManagementClient,
        subscription_id: str,
        resource_group_name: str,
        location: str,
        api_version: str = NETWORK_API_VERSION,
    ) -> None:
        self._client = client
        self._subscription_id = subscription_id
        self._resource_group_name = resource_group_name
        self._location = location
        self._api_version = api_version

    @property
    def location(self) -> str:
        return self._location

    def _vnet_id(self, name: str) -> str:
        return (
            f"/subscriptions/{self._subscription_id}"
            f"/resourceGroups/{self._resource_group_name}"
            f"/providers/Microsoft.Network/virtualNetworks/{name}"
        )

    def _call(self, operation: str, resource_id: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except ResourceNotFoundError as e:
            raise CloudResourceNotFoundError(operation, resource_id, _describe_error(e)) from e
        except AzureError as e:
            logger.warning(
                "Azure call failed",
                extra={
                    "operation": operation,
                    "resource_id": resource_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise CloudOperationError(operation, resource_id, _describe_error(e)) from e

    def _get_properties(self, operation: str, resource_id: str) -> dict[str, Any]:
        resource = self._call(
            operation,
            resource_id,
            lambda: self._client.resources.get_by_id(resource_id, self._api_version),
        )
        properties = getattr(resource, "properties", None)
        if not isinstance(properties, dict):
            raise CloudOperationError(operation, resource_id, "response has no properties")
        return properties

    def _delete(self, operation: str, resource_id: str) -> None:
        try:
            self._client.resources.begin_delete_by_id(resource_id, self._api_version).result()
        except ResourceNotFoundError:
            # Already gone: a previous pass got this far before stopping
            logger.info(
                "Resource already deleted",
                extra={"operation": operation, "resource_id": resource_id},
            )
            return
        except AzureError as e:
            raise CloudOperationError(operation, resource_id, _describe_error(e)) from e

    def create_vpc(self, cidr_block: str) -> str:
        vnet_id = self._vnet_id(f"{VNET_NAME_PREFIX}-{uuid.uuid4().hex[:12]}")
        parameters = GenericResource(
            location=self._location,
            properties={"addressSpace": {"addressPrefixes": [cidr_block]}},
        )
        self._call(
            "create_vpc",
            vnet_id,
            lambda: self._client.resources.begin_create_or_update_by_id(
                vnet_id, self._api_version, parameters
            ).result(),
        )
        logger.info(
            "Created virtual network",
            extra={"vpc_id": vnet_id, "cidr_block": cidr_block, "location": self._location},
        )
        return vnet_id

    def tag_resource(self, resource_id: str, name: str) -> None:
        resource = self._call(
            "tag_resource",
            resource_id,
            lambda: self._client.resources.get_by_id(resource_id, self._api_version),
        )
        tags = dict(getattr(resource, "tags", None) or {})
        if tags.get(NAME_TAG) == name:
            return
        tags[NAME_TAG] = name
        self._call(
            "tag_resource",
            resource_id,
            lambda: self._client.resources.begin_update_by_id(
                resource_id, self._api_version, GenericResource(tags=tags)
            ).result(),
        )
        logger.info("Applied name tag", extra={"resource_id": resource_id, "name": name})

    def create_subnet(self, vpc_id: str, cidr_block: str) -> str:
        subnet_id = f"{vpc_id}/subnets/{SUBNET_NAME_PREFIX}-{uuid.uuid4().hex[:12]}"
        parameters = GenericResource(properties={"addressPrefix": cidr_block})
        self._call(
            "create_subnet",
            subnet_id,
            lambda: self._client.resources.begin_create_or_update_by_id(
                subnet_id, self._api_version, parameters
            ).result(),
        )
        logger.info(
            "Created subnet",
            extra={"vpc_id": vpc_id, "subnet_id": subnet_id, "cidr_block": cidr_block},
        )
        return subnet_id

    def describe_vpc_cidr(self, vpc_id: str) -> str:
        properties = self._get_properties("describe_vpc_cidr", vpc_id)
        prefixes = (properties.get("addressSpace") or {}).get("addressPrefixes") or []
        if not prefixes:
            raise CloudOperationError("describe_vpc_cidr", vpc_id, "no address prefix")
        return str(prefixes[0])

    def describe_subnet_cidr(self, subnet_id: str) -> str:
        properties = self._get_properties("describe_subnet_cidr", subnet_id)
        prefix = properties.get("addressPrefix")
        if not prefix:
            prefixes = properties.get("addressPrefixes") or []
            prefix = prefixes[0] if prefixes else None
        if not prefix:
            raise CloudOperationError("describe_subnet_cidr", subnet_id, "no address prefix")
        return str(prefix)

    def delete_subnet(self, subnet_id: str) -> None:
        self._delete("delete_subnet", subnet_id)
        logger.info("Deleted subnet", extra={"subnet_id": subnet_id})

    def delete_vpc(self, vpc_id: str) -> None:
        self._delete("delete_vpc", vpc_id)
        logger.info("Deleted virtual network", extra={"vpc_id": vpc_id})


def azure_client_factory(
    config: Config,
    credential: TokenCredential | None = None,
) -> CloudClientFactory:
    """Build a factory producing region-bound AzureNetworkClients.

    A single ResourceManagementClient is shared; only the location used for
    new virtual networks differs per region.
    """
    if credential is None:
        credential = get_managed_identity_credential(config.managed_identity_client_id)

    resource_client = ResourceManagementClient(
        credential=credential,
        subscription_id=config.subscription_id,
    )

    def factory(region: str) -> CloudNetworkClient:
        return AzureNetworkClient(
            client=resource_client,
            subscription_id=config.subscription_id,
            resource_group_name=config.resource_group_name,
            location=region,
        )

    return factory
