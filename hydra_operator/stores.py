import abc
import logging
import typing as t

from easykube import ApiError

from .errors import SecretConflict


LOGGER = logging.getLogger(__name__)


#: The label that links a credentials secret to the OAuth2Client that owns it
OWNER_LABEL = "owner"


class ResourceStore(abc.ABC):
    """
    Interface for the store of OAuth2Client resources.
    """

    @abc.abstractmethod
    async def fetch(self, name: str, namespace: str) -> t.Optional[t.Dict[str, t.Any]]:
        """
        Returns the resource with the given name, or None if it does not exist.
        """

    @abc.abstractmethod
    async def add_finalizer(self, resource: t.Dict[str, t.Any], finalizer: str):
        """
        Adds the finalizer to the resource.
        """

    @abc.abstractmethod
    async def remove_finalizer(self, resource: t.Dict[str, t.Any], finalizer: str):
        """
        Removes the finalizer from the resource.
        """


class SecretStore(abc.ABC):
    """
    Interface for the store of credentials secrets.
    """

    @abc.abstractmethod
    async def fetch(self, name: str, namespace: str) -> t.Optional[t.Dict[str, t.Any]]:
        """
        Returns the secret with the given name, or None if it does not exist.
        """

    @abc.abstractmethod
    async def create(
        self,
        name: str,
        namespace: str,
        data: t.Dict[str, str],
        owner: t.Dict[str, t.Any]
    ):
        """
        Creates a secret with the given data that is owned by the given resource.

        Raises SecretConflict if the secret already exists.
        """

    @abc.abstractmethod
    async def adopt(self, secret: t.Dict[str, t.Any], owner: t.Dict[str, t.Any]):
        """
        Marks an existing secret as belonging to the given resource.
        """


class EasykubeResourceStore(ResourceStore):
    """
    Resource store backed by the Kubernetes API.
    """

    def __init__(self, ekresource):
        self._ekresource = ekresource

    async def fetch(self, name, namespace):
        try:
            return await self._ekresource.fetch(name, namespace = namespace)
        except ApiError as exc:
            if exc.status_code == 404:
                return None
            else:
                raise

    async def _patch_finalizers(self, resource, finalizers):
        # Including the resource version makes the patch fail with a conflict
        # if the finalizers were changed since the resource was read
        metadata = resource["metadata"]
        await self._ekresource.patch(
            metadata["name"],
            {
                "metadata": {
                    "finalizers": finalizers,
                    "resourceVersion": metadata.get("resourceVersion"),
                },
            },
            namespace = metadata["namespace"]
        )

    async def add_finalizer(self, resource, finalizer):
        finalizers = list(resource["metadata"].get("finalizers") or [])
        if finalizer not in finalizers:
            await self._patch_finalizers(resource, [*finalizers, finalizer])

    async def remove_finalizer(self, resource, finalizer):
        finalizers = list(resource["metadata"].get("finalizers") or [])
        if finalizer in finalizers:
            await self._patch_finalizers(
                resource,
                [f for f in finalizers if f != finalizer]
            )


class EasykubeSecretStore(SecretStore):
    """
    Secret store backed by the Kubernetes API.
    """

    def __init__(self, ekresource):
        self._ekresource = ekresource

    async def fetch(self, name, namespace):
        try:
            return await self._ekresource.fetch(name, namespace = namespace)
        except ApiError as exc:
            if exc.status_code == 404:
                return None
            else:
                raise

    async def create(self, name, namespace, data, owner):
        LOGGER.info("Creating credentials secret '%s' in namespace - %s", name, namespace)
        try:
            await self._ekresource.create(
                {
                    "apiVersion": "v1",
                    "kind": "Secret",
                    "metadata": {
                        "name": name,
                        "namespace": namespace,
                        "labels": {
                            OWNER_LABEL: owner["metadata"]["name"],
                        },
                        "ownerReferences": [
                            {
                                "apiVersion": owner["apiVersion"],
                                "kind": owner["kind"],
                                "name": owner["metadata"]["name"],
                                "uid": owner["metadata"]["uid"],
                                "blockOwnerDeletion": True,
                            },
                        ],
                    },
                    "type": "Opaque",
                    "data": data,
                },
                namespace = namespace
            )
        except ApiError as exc:
            if exc.status_code == 409:
                raise SecretConflict(
                    f"secret '{name}' already exists in namespace '{namespace}'"
                ) from exc
            else:
                raise

    async def adopt(self, secret, owner):
        labels = secret["metadata"].get("labels") or {}
        owner_name = owner["metadata"]["name"]
        if labels.get(OWNER_LABEL) != owner_name:
            LOGGER.info(
                "Labelling credentials secret '%s' with owner - %s",
                secret["metadata"]["name"],
                owner_name
            )
            await self._ekresource.patch(
                secret["metadata"]["name"],
                {"metadata": {"labels": {OWNER_LABEL: owner_name}}},
                namespace = secret["metadata"]["namespace"]
            )
