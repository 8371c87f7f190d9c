from .oauth2_client import *  # noqa: F403
