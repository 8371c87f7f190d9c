import dataclasses
import enum
import logging
import typing as t

from .credentials import Credentials, parse_secret, secret_data
from .errors import (
    InvalidEndpointError,
    InvalidSecretError,
    MetadataEncodingError,
    RegistryRequestRejected,
    SecretConflict,
)
from .hydra.client import RegistryClient
from .hydra.codec import (
    RegistryEntry,
    credentials_from,
    owner_for,
    to_registry_entry,
    with_credentials,
)
from .hydra.router import ClientRouter, EndpointDescriptor
from .models import v1alpha1 as api
from .status import StatusReporter
from .stores import ResourceStore, SecretStore


LOGGER = logging.getLogger(__name__)


class Lifecycle(enum.Enum):
    """
    The lifecycle step to take for a resource, as decided by plan_lifecycle.
    """
    #: The resource no longer exists
    ABSENT = "Absent"
    #: The resource is being deleted and still carries the finalizer
    FINALIZE = "Finalize"
    #: The resource is being deleted and cleanup is already done
    IGNORE = "Ignore"
    #: The resource has not yet been marked with the finalizer
    ADD_FINALIZER = "AddFinalizer"
    #: The resource should be synchronised with the registry
    SYNC = "Sync"


@dataclasses.dataclass(frozen = True)
class Register:
    """
    Register a new entry. Without credentials, the registry allocates them.
    """
    credentials: t.Optional[Credentials] = None


@dataclasses.dataclass(frozen = True)
class Update:
    """
    Overwrite the existing entry with the desired state.
    """
    credentials: Credentials


@dataclasses.dataclass(frozen = True)
class InSync:
    """
    The existing entry already reflects the current generation.
    """


@dataclasses.dataclass(frozen = True)
class Conflict:
    """
    The client ID is registered for a different owner.
    """
    client_id: str
    owner: str


Outcome = t.Union[Register, Update, InSync, Conflict]


@dataclasses.dataclass
class ReconcileResult:
    """
    The result of a reconciliation that did not raise.
    """
    #: Indicates that the resource should be reconciled again soon
    requeue: bool = False


def plan_lifecycle(resource: t.Optional[t.Dict[str, t.Any]], finalizer: str) -> Lifecycle:
    """
    Decides the lifecycle step for the given resource.
    """
    if resource is None:
        return Lifecycle.ABSENT
    metadata = resource["metadata"]
    has_finalizer = finalizer in (metadata.get("finalizers") or [])
    if metadata.get("deletionTimestamp"):
        return Lifecycle.FINALIZE if has_finalizer else Lifecycle.IGNORE
    elif has_finalizer:
        return Lifecycle.SYNC
    else:
        return Lifecycle.ADD_FINALIZER


def plan_sync(
    owner: str,
    generation: t.Optional[int],
    observed_generation: t.Optional[int],
    credentials: t.Optional[Credentials],
    existing: t.Optional[RegistryEntry],
    has_error: bool = False
) -> Outcome:
    """
    Decides how to bring the registry in line with the desired state.

    existing is the entry registered under the client ID from the credentials, if any.
    has_error indicates that the status holds an error from a previous pass, in which
    case the desired state is applied again so that the error can be cleared.
    """
    if credentials is None:
        return Register()
    if existing is None:
        return Register(credentials)
    if existing.owner != owner:
        return Conflict(credentials.id.decode(), existing.owner)
    if generation == observed_generation and not has_error:
        return InSync()
    return Update(credentials)


async def unregister(client: RegistryClient, owner: str) -> int:
    """
    Deletes every entry in the registry that belongs to the given owner.

    Returns the number of deleted entries.
    """
    # Entries are linked to resources only by the owner, so we have to scan them all
    owned = [entry for entry in await client.list() if entry.owner == owner]
    for entry in owned:
        await client.delete(entry.client_id)
    return len(owned)


class Reconciler:
    """
    Reconciles OAuth2Client resources with the client registry.
    """

    def __init__(
        self,
        resources: ResourceStore,
        secrets: SecretStore,
        router: ClientRouter,
        status: StatusReporter,
        finalizer: str
    ):
        self._resources = resources
        self._secrets = secrets
        self._router = router
        self._status = status
        self._finalizer = finalizer

    async def reconcile(self, name: str, namespace: str) -> ReconcileResult:
        """
        Performs one reconciliation pass for the resource with the given name.

        Problems that only a change to the resource or its secret can fix are
        recorded in the status of the resource. Any other problem is raised so
        that the caller can retry.
        """
        owner = owner_for(name, namespace)
        resource = await self._resources.fetch(name, namespace)
        lifecycle = plan_lifecycle(resource, self._finalizer)
        if lifecycle == Lifecycle.ABSENT:
            # The deletion may have been missed, so clean up anything we can find
            LOGGER.info("OAuth2 client no longer exists, unregistering - %s", owner)
            for client in await self._router.clients():
                await unregister(client, owner)
        elif lifecycle == Lifecycle.FINALIZE:
            await self._finalize(resource, owner)
        elif lifecycle == Lifecycle.ADD_FINALIZER:
            LOGGER.info("Adding finalizer to OAuth2 client - %s", owner)
            await self._resources.add_finalizer(resource, self._finalizer)
            # The registry is not touched until the finalizer is known to be stored
            return ReconcileResult(requeue = True)
        elif lifecycle == Lifecycle.SYNC:
            await self._sync(resource, owner)
        return ReconcileResult()

    async def _finalize(self, resource, owner):
        spec = api.OAuth2ClientSpec.model_validate(resource["spec"])
        try:
            client = await self._router.resolve(
                EndpointDescriptor.from_spec(spec.hydra_admin)
            )
        except InvalidEndpointError:
            # Nothing can have been registered with an endpoint that is invalid
            LOGGER.warning("OAuth2 client has an invalid endpoint, skipping cleanup - %s", owner)
        else:
            count = await unregister(client, owner)
            LOGGER.info("Unregistered %d entries for OAuth2 client - %s", count, owner)
        # Only release the resource once everything it owns is gone
        await self._resources.remove_finalizer(resource, self._finalizer)

    async def _record_error(self, resource, code, description):
        status = api.OAuth2ClientStatus.model_validate(resource.get("status") or {})
        error = status.reconciliation_error
        if (
            status.observed_generation == resource["metadata"].get("generation") and
            error.status_code == code and
            error.description == description
        ):
            return
        await self._status.record_error(resource, code, description)

    async def _sync(self, resource, owner):
        metadata = resource["metadata"]
        spec = api.OAuth2ClientSpec.model_validate(resource["spec"])
        status = api.OAuth2ClientStatus.model_validate(resource.get("status") or {})

        # Load the credentials, if they exist
        secret = await self._secrets.fetch(spec.secret_name, metadata["namespace"])
        if secret is not None:
            try:
                credentials = parse_secret(
                    secret.get("data"),
                    spec.token_endpoint_auth_method
                )
            except InvalidSecretError as exc:
                await self._record_error(
                    resource,
                    api.StatusCode.INVALID_SECRET,
                    f"secret '{spec.secret_name}' is invalid: {exc}"
                )
                return
        else:
            credentials = None

        try:
            client = await self._router.resolve(
                EndpointDescriptor.from_spec(spec.hydra_admin)
            )
        except InvalidEndpointError as exc:
            await self._record_error(
                resource,
                api.StatusCode.INVALID_HYDRA_ADDRESS,
                str(exc)
            )
            return

        existing = await client.get(credentials.id.decode()) if credentials else None
        outcome = plan_sync(
            owner,
            metadata.get("generation"),
            status.observed_generation,
            credentials,
            existing,
            status.reconciliation_error.status_code is not None
        )

        if isinstance(outcome, InSync):
            LOGGER.debug("OAuth2 client is up to date - %s", owner)
            return
        if isinstance(outcome, Conflict):
            await self._record_error(
                resource,
                api.StatusCode.INVALID_SECRET,
                f"client ID '{outcome.client_id}' is already registered "
                f"for '{outcome.owner}'"
            )
            return

        failure_code = (
            api.StatusCode.UPDATE_FAILED
            if isinstance(outcome, Update)
            else api.StatusCode.REGISTRATION_FAILED
        )
        try:
            entry = to_registry_entry(metadata["name"], metadata["namespace"], spec)
            if isinstance(outcome, Update):
                LOGGER.info("Updating OAuth2 client - %s", owner)
                await client.update(with_credentials(entry, outcome.credentials))
            elif outcome.credentials is not None:
                LOGGER.info("Registering OAuth2 client with existing credentials - %s", owner)
                await client.create(with_credentials(entry, outcome.credentials))
                await self._secrets.adopt(secret, resource)
            else:
                LOGGER.info("Registering new OAuth2 client - %s", owner)
                created = await client.create(entry)
                if not await self._store_credentials(client, resource, spec, created):
                    return
        except (MetadataEncodingError, RegistryRequestRejected) as exc:
            await self._record_error(resource, failure_code, str(exc))
            return

        await self._status.clear_error(resource)

    async def _store_credentials(self, client, resource, spec, created):
        """
        Writes the credentials allocated by the registry into the secret.

        If this fails, the new entry is removed again so that the next attempt
        starts from scratch.
        """
        namespace = resource["metadata"]["namespace"]
        try:
            await self._secrets.create(
                spec.secret_name,
                namespace,
                secret_data(credentials_from(created)),
                resource
            )
        except SecretConflict as exc:
            await client.delete(created.client_id)
            await self._record_error(
                resource,
                api.StatusCode.CREATE_SECRET_FAILED,
                str(exc)
            )
            return False
        except Exception:
            await client.delete(created.client_id)
            raise
        return True
