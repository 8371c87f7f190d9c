import asyncio
import dataclasses
import logging
import typing as t

from ..errors import EndpointNotConfigured
from ..models import v1alpha1 as api
from .client import HydraClient, RegistryClient


LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen = True)
class EndpointDescriptor:
    """
    Identifies a Hydra admin API. Value-equal descriptors identify the same registry.
    """
    url: str
    port: t.Optional[int] = None
    path: str = "/clients"
    forwarded_proto: t.Optional[str] = None

    @classmethod
    def from_spec(cls, hydra_admin: t.Optional[api.HydraAdmin]) -> t.Optional["EndpointDescriptor"]:
        """
        Returns the descriptor for the endpoint declared by a resource, if any.
        """
        if hydra_admin is None:
            return None
        return cls(
            hydra_admin.url,
            hydra_admin.port,
            hydra_admin.endpoint,
            hydra_admin.forwarded_proto
        )


ClientFactory = t.Callable[[EndpointDescriptor], RegistryClient]


def hydra_client_factory(timeout: float = 10.0) -> ClientFactory:
    """
    Returns a factory that builds Hydra clients with the given request timeout.
    """
    def factory(descriptor: EndpointDescriptor) -> RegistryClient:
        return HydraClient(
            descriptor.url,
            descriptor.port,
            descriptor.path,
            descriptor.forwarded_proto,
            timeout = timeout
        )
    return factory


class ClientRouter:
    """
    Maps endpoint descriptors to registry clients, building each client only once.
    """

    def __init__(
        self,
        factory: ClientFactory,
        default: t.Optional[RegistryClient] = None
    ):
        self._factory = factory
        self._default = default
        self._clients: t.Dict[EndpointDescriptor, RegistryClient] = {}
        self._lock = asyncio.Lock()

    async def resolve(self, descriptor: t.Optional[EndpointDescriptor]) -> RegistryClient:
        """
        Returns the registry client for the given descriptor.

        If no descriptor is given, the default client is returned.
        """
        if descriptor is None:
            if self._default is None:
                raise EndpointNotConfigured(
                    "no Hydra endpoint is declared and no default is configured"
                )
            return self._default
        # Hold the lock for the whole check-and-create so that concurrent
        # reconciliations for the same endpoint share one client
        async with self._lock:
            try:
                return self._clients[descriptor]
            except KeyError:
                LOGGER.info(
                    "Creating Hydra client for endpoint - %s",
                    descriptor.url
                )
                client = self._factory(descriptor)
                self._clients[descriptor] = client
                return client

    async def clients(self) -> t.List[RegistryClient]:
        """
        Returns all the known clients, starting with the default if there is one.
        """
        async with self._lock:
            clients = list(self._clients.values())
        if self._default is not None:
            clients.insert(0, self._default)
        return clients

    async def aclose(self):
        """
        Closes all the known clients.
        """
        for client in await self.clients():
            await client.aclose()
