import abc
import logging
import typing as t

from .models import v1alpha1 as api


LOGGER = logging.getLogger(__name__)


class StatusReporter(abc.ABC):
    """
    Interface for writing the outcome of a reconciliation to the status of a resource.

    Both operations stamp the observed generation with the generation of the resource.
    """

    @abc.abstractmethod
    async def record_error(
        self,
        resource: t.Dict[str, t.Any],
        code: api.StatusCode,
        description: str
    ):
        """
        Records a reconciliation error on the resource.
        """

    @abc.abstractmethod
    async def clear_error(self, resource: t.Dict[str, t.Any]):
        """
        Records a successful reconciliation on the resource.
        """


class EasykubeStatusReporter(StatusReporter):
    """
    Status reporter that patches the status subresource using the Kubernetes API.
    """

    def __init__(self, ekstatus):
        self._ekstatus = ekstatus

    async def _patch_status(self, resource, error):
        metadata = resource["metadata"]
        await self._ekstatus.patch(
            metadata["name"],
            {
                "status": {
                    "observedGeneration": metadata.get("generation"),
                    # A null in a merge patch removes the key
                    "reconciliationError": error,
                },
            },
            namespace = metadata["namespace"]
        )

    async def record_error(self, resource, code, description):
        LOGGER.warning(
            "Recording reconciliation error '%s' for '%s/%s' - %s",
            code.value,
            resource["metadata"]["name"],
            resource["metadata"]["namespace"],
            description
        )
        await self._patch_status(
            resource,
            {"statusCode": code.value, "description": description}
        )

    async def clear_error(self, resource):
        await self._patch_status(resource, None)
