import json
import typing as t

from pydantic import BaseModel, Field

from ..credentials import Credentials
from ..errors import MetadataEncodingError
from ..models import v1alpha1 as api


class RegistryEntry(BaseModel):
    """
    An OAuth2 client as it is represented by Hydra.
    """
    client_name: t.Optional[str] = None
    client_id: t.Optional[str] = None
    client_secret: t.Optional[str] = None
    grant_types: t.List[str] = Field(default_factory = list)
    redirect_uris: t.List[str] = Field(default_factory = list)
    post_logout_redirect_uris: t.List[str] = Field(default_factory = list)
    allowed_cors_origins: t.List[str] = Field(default_factory = list)
    response_types: t.List[str] = Field(default_factory = list)
    audience: t.List[str] = Field(default_factory = list)
    scope: str = ""
    owner: str = ""
    token_endpoint_auth_method: t.Optional[str] = None
    metadata: t.Optional[t.Any] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        """
        Returns the JSON body to send to Hydra for this entry.
        """
        body = self.model_dump(exclude_none = True)
        # Hydra requires these even when they are empty
        body.setdefault("grant_types", [])
        body.setdefault("scope", "")
        body.setdefault("owner", "")
        return body


def owner_for(name: str, namespace: str) -> str:
    """
    Returns the owner string that links registry entries to a resource.
    """
    return f"{name}/{namespace}"


def encode_metadata(metadata: t.Any) -> t.Any:
    """
    Returns the metadata unmodified after checking that it is valid JSON.
    """
    if metadata is None:
        return None
    try:
        json.dumps(metadata, allow_nan = False)
    except (TypeError, ValueError) as exc:
        raise MetadataEncodingError(
            f"unable to encode metadata as JSON: {exc}"
        ) from exc
    return metadata


def to_registry_entry(
    name: str,
    namespace: str,
    spec: api.OAuth2ClientSpec
) -> RegistryEntry:
    """
    Converts the spec of an OAuth2Client into a registry entry without credentials.
    """
    auth_method = spec.token_endpoint_auth_method
    return RegistryEntry(
        client_name = spec.client_name,
        grant_types = [gt.value for gt in spec.grant_types],
        response_types = [rt.value for rt in spec.response_types],
        redirect_uris = list(spec.redirect_uris),
        post_logout_redirect_uris = list(spec.post_logout_redirect_uris),
        allowed_cors_origins = list(spec.allowed_cors_origins),
        audience = list(spec.audience),
        scope = spec.scope,
        owner = owner_for(name, namespace),
        token_endpoint_auth_method = auth_method.value if auth_method else None,
        metadata = encode_metadata(spec.metadata),
    )


def with_credentials(entry: RegistryEntry, credentials: Credentials) -> RegistryEntry:
    """
    Returns a copy of the entry with the given credentials merged in.
    """
    update = {"client_id": credentials.id.decode()}
    if credentials.secret is not None:
        update["client_secret"] = credentials.secret.decode()
    return entry.model_copy(update = update)


def credentials_from(entry: RegistryEntry) -> Credentials:
    """
    Returns the credentials that the registry allocated for an entry.
    """
    return Credentials(
        entry.client_id.encode(),
        entry.client_secret.encode() if entry.client_secret is not None else None
    )
