import typing as t

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings for the Hydra operator, loaded from the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix = "HYDRA_OPERATOR_",
        env_file = ".env",
        env_file_encoding = "utf-8",
        case_sensitive = False,
    )

    # The API group of the custom resources
    api_group: str = Field("hydra.ory.sh", min_length = 1)
    # The field manager name to use for server-side apply
    easykube_field_manager: str = Field("hydra-operator", min_length = 1)
    # The finalizer that gates deletion of OAuth2Client resources
    finalizer: str = Field("finalizer.ory.hydra.sh", min_length = 1)

    # The default Hydra admin API, used for resources that do not name one
    # If no URL is given, every resource must declare its own endpoint
    hydra_url: t.Optional[str] = None
    hydra_port: t.Optional[int] = None
    hydra_endpoint: str = "/clients"
    hydra_forwarded_proto: t.Optional[str] = None

    # Timeout for requests to Hydra, in seconds
    request_timeout: float = 10.0
    # Delay before a resource is processed again after its finalizer is added
    requeue_delay: int = 1

    log_level: t.Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


settings = Settings()
