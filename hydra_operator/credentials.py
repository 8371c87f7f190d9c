import base64
import binascii
import dataclasses
import typing as t

from .errors import InvalidSecretError
from .models import v1alpha1 as api


#: The secret key that holds the client ID
CLIENT_ID_KEY = "client_id"
#: The secret key that holds the client secret
CLIENT_SECRET_KEY = "client_secret"


@dataclasses.dataclass(frozen = True)
class Credentials:
    """
    The credentials for an OAuth2 client.

    The secret is None for clients that do not authenticate at the token endpoint.
    """
    id: bytes
    secret: t.Optional[bytes] = None


def _decode(data, key):
    try:
        return base64.b64decode(data[key], validate = True)
    except (binascii.Error, TypeError, ValueError) as exc:
        raise InvalidSecretError(f"secret key '{key}' is not valid base64") from exc


def parse_secret(
    data: t.Optional[t.Dict[str, str]],
    auth_method: t.Optional[api.TokenEndpointAuthMethod] = None
) -> Credentials:
    """
    Returns the credentials held in the given secret data.

    The values are expected to be base64-encoded, as they are in the data of a
    Kubernetes secret.
    """
    data = data or {}
    if CLIENT_ID_KEY not in data:
        raise InvalidSecretError(f"secret is missing the '{CLIENT_ID_KEY}' key")
    if CLIENT_SECRET_KEY in data:
        secret = _decode(data, CLIENT_SECRET_KEY)
    elif auth_method == api.TokenEndpointAuthMethod.NONE:
        # A public client has nothing to authenticate with
        secret = None
    else:
        raise InvalidSecretError(f"secret is missing the '{CLIENT_SECRET_KEY}' key")
    return Credentials(_decode(data, CLIENT_ID_KEY), secret)


def secret_data(credentials: Credentials) -> t.Dict[str, str]:
    """
    Returns the secret data for the given credentials.
    """
    data = {CLIENT_ID_KEY: base64.b64encode(credentials.id).decode()}
    if credentials.secret is not None:
        data[CLIENT_SECRET_KEY] = base64.b64encode(credentials.secret).decode()
    return data
