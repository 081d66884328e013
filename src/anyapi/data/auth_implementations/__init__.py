from anyapi.data.auth import register_auth
from anyapi.data.auth_implementations.no_auth import NoAuth, NoAuthSerializer
from anyapi.data.auth_implementations.api_key_auth import ApiKeyAuth, ApiKeyAuthSerializer
from anyapi.data.auth_implementations.bearer_auth import BearerAuth, BearerAuthSerializer
from anyapi.data.auth_implementations.basic_auth import BasicAuth, BasicAuthSerializer
from anyapi.data.auth_implementations.oauth2_auth import OAuth2Auth, OAuth2AuthSerializer

register_auth("none", NoAuthSerializer())
register_auth("api_key", ApiKeyAuthSerializer())
register_auth("bearer", BearerAuthSerializer())
register_auth("basic", BasicAuthSerializer())
register_auth("oauth2", OAuth2AuthSerializer())

__all__ = [
    "NoAuth",
    "ApiKeyAuth",
    "BearerAuth",
    "BasicAuth",
    "OAuth2Auth",
    "NoAuthSerializer",
    "ApiKeyAuthSerializer",
    "BearerAuthSerializer",
    "BasicAuthSerializer",
    "OAuth2AuthSerializer",
]
