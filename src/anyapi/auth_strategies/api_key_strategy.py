from typing import Optional

from anyapi.data.auth_implementations.api_key_auth import ApiKeyAuth
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.invocation.request_synthesizer import SynthesizedRequest
from anyapi.secrets.secret_resolver import SecretResolver


class ApiKeyStrategy(AuthStrategy):
    """REQUIRED
    Places an API key in a header, query parameter or cookie.

    The key is resolved on every call so rotated secrets take effect
    immediately.
    """

    def __init__(self, auth: ApiKeyAuth, resolver: SecretResolver, context: Optional[TenantSecretContext] = None):
        self.auth = auth
        self.resolver = resolver
        self.context = context

    async def apply(self, request: SynthesizedRequest) -> None:
        key = await self.resolver.resolve(self.auth.secret, self.context)
        if self.auth.location == "header":
            request.headers[self.auth.parameter_name] = key
        elif self.auth.location == "query":
            request.add_query_parameter(self.auth.parameter_name, key)
        elif self.auth.location == "cookie":
            request.cookies[self.auth.parameter_name] = key
