import abc
import logging
import typing as t

import httpx

from ..errors import (
    InvalidEndpointError,
    RegistryRequestRejected,
    RegistryUnavailable,
)
from .codec import RegistryEntry


LOGGER = logging.getLogger(__name__)


class RegistryClient(abc.ABC):
    """
    Interface for a client of an OAuth2 client registry.
    """

    @abc.abstractmethod
    async def get(self, client_id: str) -> t.Optional[RegistryEntry]:
        """
        Returns the entry with the given client ID, or None if there is no such entry.
        """

    @abc.abstractmethod
    async def list(self) -> t.List[RegistryEntry]:
        """
        Returns all the entries in the registry.
        """

    @abc.abstractmethod
    async def create(self, entry: RegistryEntry) -> RegistryEntry:
        """
        Creates the given entry and returns the registry's view of it.

        If the entry has no client ID, the registry allocates the credentials.
        """

    @abc.abstractmethod
    async def update(self, entry: RegistryEntry) -> RegistryEntry:
        """
        Replaces the entry with the same client ID and returns the registry's view of it.
        """

    @abc.abstractmethod
    async def delete(self, client_id: str):
        """
        Deletes the entry with the given client ID. Deleting a missing entry is not an error.
        """

    async def aclose(self):
        """
        Releases any resources held by the client.
        """


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = body.get("error_description") or body.get("error") or response.text
    return f"Hydra responded with {response.status_code}: {error}"


def _raise_for_status(response: httpx.Response):
    if response.is_server_error:
        raise RegistryUnavailable(_error_message(response), response.status_code)
    if response.is_client_error:
        raise RegistryRequestRejected(_error_message(response), response.status_code)


class HydraClient(RegistryClient):
    """
    Registry client for the ORY Hydra admin API.
    """

    def __init__(
        self,
        url: str,
        port: t.Optional[int] = None,
        endpoint: str = "/clients",
        forwarded_proto: t.Optional[str] = None,
        timeout: float = 10.0,
        transport: t.Optional[httpx.AsyncBaseTransport] = None
    ):
        try:
            base_url = httpx.URL(url)
            if port:
                base_url = base_url.copy_with(port = port)
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            raise InvalidEndpointError(f"invalid Hydra URL '{url}': {exc}") from exc
        if base_url.scheme not in {"http", "https"} or not base_url.host:
            raise InvalidEndpointError(f"invalid Hydra URL '{url}'")
        self._endpoint = "/" + endpoint.strip("/")
        headers = {}
        if forwarded_proto:
            headers["X-Forwarded-Proto"] = forwarded_proto
        self._client = httpx.AsyncClient(
            base_url = base_url,
            headers = headers,
            timeout = timeout,
            transport = transport,
        )

    @property
    def base_url(self) -> httpx.URL:
        return self._client.base_url

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise RegistryUnavailable(f"error communicating with Hydra: {exc}") from exc

    async def get(self, client_id):
        response = await self._request("GET", f"{self._endpoint}/{client_id}")
        if response.status_code == 404:
            return None
        _raise_for_status(response)
        return RegistryEntry.model_validate(response.json())

    async def list(self):
        entries = []
        url = self._endpoint
        # Follow the next links until there are no more pages
        while url:
            response = await self._request("GET", url)
            _raise_for_status(response)
            page = response.json() or []
            entries.extend(RegistryEntry.model_validate(item) for item in page)
            next_link = response.links.get("next")
            url = next_link["url"] if page and next_link else None
        return entries

    async def create(self, entry):
        LOGGER.info("Creating OAuth2 client in Hydra for owner - %s", entry.owner)
        response = await self._request("POST", self._endpoint, json = entry.to_wire())
        _raise_for_status(response)
        return RegistryEntry.model_validate(response.json())

    async def update(self, entry):
        LOGGER.info(
            "Updating OAuth2 client '%s' in Hydra for owner - %s",
            entry.client_id,
            entry.owner
        )
        response = await self._request(
            "PUT",
            f"{self._endpoint}/{entry.client_id}",
            json = entry.to_wire()
        )
        _raise_for_status(response)
        return RegistryEntry.model_validate(response.json())

    async def delete(self, client_id):
        LOGGER.info("Deleting OAuth2 client '%s' in Hydra", client_id)
        response = await self._request("DELETE", f"{self._endpoint}/{client_id}")
        # Not found is fine - it means the client is already gone
        if response.status_code != 404:
            _raise_for_status(response)

    async def aclose(self):
        await self._client.aclose()
