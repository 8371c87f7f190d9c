import typing as t

from pydantic import Field

from kube_custom_resource import CustomResource, schema


__all__ = [
    "GrantType",
    "ResponseType",
    "TokenEndpointAuthMethod",
    "StatusCode",
    "HydraAdmin",
    "OAuth2ClientSpec",
    "ReconciliationError",
    "OAuth2ClientStatus",
    "OAuth2Client",
]


class GrantType(str, schema.Enum):
    """
    The OAuth2 grant types that a client may be allowed to use.
    """
    CLIENT_CREDENTIALS = "client_credentials"
    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT           = "implicit"
    REFRESH_TOKEN      = "refresh_token"


class ResponseType(str, schema.Enum):
    """
    The OAuth2 response types that a client may use at the authorization endpoint.
    """
    ID_TOKEN = "id_token"
    CODE     = "code"
    TOKEN    = "token"


class TokenEndpointAuthMethod(str, schema.Enum):
    """
    The methods a client may use to authenticate at the token endpoint.
    """
    CLIENT_SECRET_BASIC = "client_secret_basic"
    CLIENT_SECRET_POST  = "client_secret_post"
    PRIVATE_KEY_JWT     = "private_key_jwt"
    NONE                = "none"


class StatusCode(str, schema.Enum):
    """
    The codes for errors that are recorded on the status of a client.
    """
    REGISTRATION_FAILED   = "CLIENT_REGISTRATION_FAILED"
    CREATE_SECRET_FAILED  = "SECRET_CREATION_FAILED"
    UPDATE_FAILED         = "CLIENT_UPDATE_FAILED"
    INVALID_SECRET        = "INVALID_SECRET"
    INVALID_HYDRA_ADDRESS = "INVALID_HYDRA_ADDRESS"


class HydraAdmin(schema.BaseModel):
    """
    The Hydra admin API that a client should be registered with.
    """
    url: schema.constr(min_length = 1) = Field(
        ...,
        description = "The URL of the Hydra admin API, e.g. http://hydra-admin.hydra."
    )
    port: schema.Optional[int] = Field(
        None,
        description = "The port of the Hydra admin API, if not implied by the URL."
    )
    endpoint: schema.constr(min_length = 1) = Field(
        "/clients",
        description = "The path of the clients endpoint of the Hydra admin API."
    )
    forwarded_proto: schema.Optional[schema.constr(min_length = 1)] = Field(
        None,
        description = "If given, sent as the X-Forwarded-Proto header with each request."
    )


class OAuth2ClientSpec(schema.BaseModel):
    """
    The spec for an OAuth2 client.
    """
    client_name: schema.Optional[str] = Field(
        None,
        description = "The human-readable name of the client."
    )
    grant_types: t.List[GrantType] = Field(
        ...,
        min_length = 1,
        max_length = 4,
        description = "The grant types the client is allowed to use."
    )
    response_types: t.List[ResponseType] = Field(
        default_factory = list,
        max_length = 3,
        description = (
            "The response types the client can use at the authorization endpoint."
        )
    )
    redirect_uris: t.List[schema.constr(min_length = 1)] = Field(
        default_factory = list,
        description = "The redirect URIs allowed for the client."
    )
    post_logout_redirect_uris: t.List[schema.constr(min_length = 1)] = Field(
        default_factory = list,
        description = "The URIs the client may redirect to after logout."
    )
    allowed_cors_origins: t.List[schema.constr(min_length = 1)] = Field(
        default_factory = list,
        description = "The origins that are allowed to make CORS requests for the client."
    )
    audience: t.List[str] = Field(
        default_factory = list,
        description = "The audiences the client is allowed to request tokens for."
    )
    scope: str = Field(
        ...,
        description = "Space-separated list of scopes the client can request."
    )
    secret_name: schema.constr(min_length = 1, max_length = 253) = Field(
        ...,
        description = "The name of the secret that holds the client ID and secret."
    )
    token_endpoint_auth_method: schema.Optional[TokenEndpointAuthMethod] = Field(
        None,
        description = "The method the client uses to authenticate at the token endpoint."
    )
    hydra_admin: schema.Optional[HydraAdmin] = Field(
        None,
        description = (
            "The Hydra admin API to register the client with. "
            "If not given, the operator default is used."
        )
    )
    metadata: t.Any = Field(
        None,
        description = "Arbitrary metadata that is passed to Hydra unmodified.",
        json_schema_extra = {"x-kubernetes-preserve-unknown-fields": True}
    )


class ReconciliationError(schema.BaseModel):
    """
    An error that occurred while reconciling a client.
    """
    status_code: schema.Optional[StatusCode] = Field(
        None,
        description = "The code for the error."
    )
    description: schema.Optional[str] = Field(
        None,
        description = "A description of the error."
    )


class OAuth2ClientStatus(schema.BaseModel, extra = "allow"):
    """
    The status of an OAuth2 client.
    """
    observed_generation: schema.Optional[int] = Field(
        None,
        description = "The most recent generation that was reconciled."
    )
    reconciliation_error: ReconciliationError = Field(
        default_factory = ReconciliationError,
        description = "The error from the most recent reconciliation, if any."
    )


class OAuth2Client(
    CustomResource,
    subresources = {"status": {}},
    printer_columns = [
        {
            "name": "Secret",
            "type": "string",
            "jsonPath": ".spec.secretName",
        },
        {
            "name": "Grant Types",
            "type": "string",
            "jsonPath": ".spec.grantTypes",
        },
        {
            "name": "Observed Generation",
            "type": "integer",
            "jsonPath": ".status.observedGeneration",
        },
        {
            "name": "Error",
            "type": "string",
            "jsonPath": ".status.reconciliationError.statusCode",
        },
    ]
):
    """
    An OAuth2Client.
    """
    spec: OAuth2ClientSpec
    status: OAuth2ClientStatus = Field(default_factory = OAuth2ClientStatus)
