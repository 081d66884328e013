from typing import Optional

from anyapi.data.auth_implementations.bearer_auth import BearerAuth
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.invocation.request_synthesizer import SynthesizedRequest
from anyapi.secrets.secret_resolver import SecretResolver


class BearerStrategy(AuthStrategy):
    """REQUIRED
    Sends a static token as ``Authorization: {prefix} {token}``."""

    def __init__(self, auth: BearerAuth, resolver: SecretResolver, context: Optional[TenantSecretContext] = None):
        self.auth = auth
        self.resolver = resolver
        self.context = context

    async def apply(self, request: SynthesizedRequest) -> None:
        token = await self.resolver.resolve(self.auth.secret, self.context)
        request.headers["Authorization"] = f"{self.auth.prefix} {token}"
