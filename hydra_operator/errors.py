class ReconcileError(Exception):
    """
    Base class for errors raised while reconciling an OAuth2 client.
    """


class InvalidSecretError(ReconcileError):
    """
    Raised when a credentials secret is missing a required key.
    """


class MetadataEncodingError(ReconcileError):
    """
    Raised when the client metadata cannot be encoded as JSON.
    """


class InvalidEndpointError(ReconcileError):
    """
    Raised when a Hydra endpoint descriptor cannot be turned into a client.
    """


class EndpointNotConfigured(ReconcileError):
    """
    Raised when a resource names no Hydra endpoint and there is no default.
    """


class SecretConflict(ReconcileError):
    """
    Raised when a secret that is being created already exists.
    """


class RegistryError(ReconcileError):
    """
    Base class for errors returned by the client registry.
    """

    def __init__(self, message, status_code = None):
        super().__init__(message)
        self.status_code = status_code


class RegistryUnavailable(RegistryError):
    """
    Raised when the registry cannot be reached or fails with a server error.
    """


class RegistryRequestRejected(RegistryError):
    """
    Raised when the registry rejects a request with a client error.
    """
