import functools
import logging

import easykube
import kopf

from kube_custom_resource import CustomResourceRegistry

from . import models
from .config import settings
from .hydra.router import ClientRouter, EndpointDescriptor, hydra_client_factory
from .models import v1alpha1 as api
from .reconciler import Reconciler
from .status import EasykubeStatusReporter
from .stores import EasykubeResourceStore, EasykubeSecretStore


LOGGER = logging.getLogger(__name__)


# These are initialised inside the event loop when the operator starts
ekclient = None
router = None
reconciler = None


def configure_logging():
    """
    Configures logging using the level from the settings.
    """
    logging.basicConfig(
        level = getattr(logging, settings.log_level),
        format = "%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def ekresource_for_model(model, subresource = None):
    """
    Returns an easykube resource for the given model.
    """
    api = await ekclient.api(f"{settings.api_group}/{model._meta.version}")
    resource = model._meta.plural_name
    if subresource:
        resource = f"{resource}/{subresource}"
    return await api.resource(resource)


def build_router() -> ClientRouter:
    """
    Returns a client router whose default client is taken from the settings.
    """
    factory = hydra_client_factory(settings.request_timeout)
    default = None
    if settings.hydra_url:
        default = factory(
            EndpointDescriptor(
                settings.hydra_url,
                settings.hydra_port,
                settings.hydra_endpoint,
                settings.hydra_forwarded_proto
            )
        )
    else:
        LOGGER.warning("No default Hydra endpoint configured")
    return ClientRouter(factory, default)


async def build_reconciler(router: ClientRouter) -> Reconciler:
    """
    Returns a reconciler that uses the Kubernetes API for its stores.
    """
    core_v1 = await ekclient.api("v1")
    return Reconciler(
        EasykubeResourceStore(await ekresource_for_model(api.OAuth2Client)),
        EasykubeSecretStore(await core_v1.resource("secrets")),
        router,
        EasykubeStatusReporter(await ekresource_for_model(api.OAuth2Client, "status")),
        settings.finalizer
    )


@kopf.on.startup()
async def apply_settings(**kwargs):
    """
    Applies kopf settings and initialises the clients used by the handlers.
    """
    global ekclient, router, reconciler
    configure_logging()
    kopf_settings = kwargs["settings"]
    kopf_settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix = settings.api_group
    )
    kopf_settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix = settings.api_group,
        key = "last-handled-configuration",
    )
    ekclient = easykube.Configuration.from_environment().async_client(
        default_field_manager = settings.easykube_field_manager
    )
    registry = CustomResourceRegistry(settings.api_group, ["hydra"])
    registry.discover_models(models)
    try:
        for crd in registry:
            await ekclient.apply_object(crd.kubernetes_resource(), force = True)
    except Exception:
        LOGGER.exception("error applying CRDs - exiting")
        raise
    router = build_router()
    reconciler = await build_reconciler(router)


@kopf.on.cleanup()
async def on_cleanup(**kwargs):
    """
    Closes the clients used by the handlers.
    """
    if router is not None:
        await router.aclose()
    if ekclient is not None:
        await ekclient.aclose()


def model_handler(model, register_fn, **kwargs):
    """
    Decorator that registers a handler with kopf for the specified model.
    """
    def decorator(func):
        @functools.wraps(func)
        async def handler(**handler_kwargs):
            try:
                return await func(**handler_kwargs)
            except easykube.ApiError as exc:
                # Conflicts mean somebody else changed the resource, so try again soon
                if exc.status_code == 409:
                    raise kopf.TemporaryError(str(exc), delay = settings.requeue_delay)
                else:
                    raise
        return register_fn(
            settings.api_group,
            model._meta.version,
            model._meta.plural_name,
            **kwargs
        )(handler)
    return decorator


async def reconcile(name: str, namespace: str):
    """
    Reconciles the named OAuth2Client, asking kopf to come back if required.
    """
    result = await reconciler.reconcile(name, namespace)
    if result.requeue:
        raise kopf.TemporaryError(
            f"OAuth2 client '{name}/{namespace}' requeued",
            delay = settings.requeue_delay
        )


@model_handler(api.OAuth2Client, kopf.on.create)
@model_handler(api.OAuth2Client, kopf.on.update, field = "spec")
@model_handler(api.OAuth2Client, kopf.on.resume)
async def reconcile_oauth2_client(name, namespace, **kwargs):
    """
    Handles the creation or update of an OAuth2 client.
    """
    await reconcile(name, namespace)


# Our own finalizer keeps the resource around, so kopf does not need to add one
@model_handler(api.OAuth2Client, kopf.on.delete, optional = True)
async def delete_oauth2_client(name, namespace, **kwargs):
    """
    Handles the deletion of an OAuth2 client.
    """
    await reconcile(name, namespace)


@model_handler(api.OAuth2Client, kopf.on.event)
async def handle_oauth2_client_event(name, namespace, **kwargs):
    """
    Cleans up after OAuth2 clients that disappear without being finalized.
    """
    if kwargs["type"] == "DELETED":
        await reconcile(name, namespace)
