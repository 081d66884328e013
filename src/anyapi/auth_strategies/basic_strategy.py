from typing import Optional

from aiohttp import BasicAuth as AiohttpBasicAuth

from anyapi.data.auth_implementations.basic_auth import BasicAuth
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.invocation.request_synthesizer import SynthesizedRequest
from anyapi.secrets.secret_resolver import SecretResolver


class BasicStrategy(AuthStrategy):
    """REQUIRED
    Sends ``Authorization: Basic base64(username:password)``."""

    def __init__(self, auth: BasicAuth, resolver: SecretResolver, context: Optional[TenantSecretContext] = None):
        self.auth = auth
        self.resolver = resolver
        self.context = context

    async def apply(self, request: SynthesizedRequest) -> None:
        username = await self.resolver.resolve(self.auth.username, self.context)
        password = await self.resolver.resolve(self.auth.password, self.context)
        request.headers["Authorization"] = AiohttpBasicAuth(username, password).encode()
