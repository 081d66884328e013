"""OAuth2 token acquisition and caching.

A strategy holds one access token. The token is refreshed when it is
missing or expires within the refresh buffer. Concurrent callers that find
the token stale all wait on one lock, and only the first one through
contacts the token endpoint; the rest see the fresh token on the re-check.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import aiohttp

from anyapi.data.auth_implementations.oauth2_auth import OAuth2Auth
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.exceptions import AuthResolutionError
from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.invocation.request_synthesizer import SynthesizedRequest
from anyapi.secrets.secret_resolver import SecretResolver

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d - %(message)s"
)

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class OAuth2Strategy(AuthStrategy):
    """REQUIRED
    Bearer tokens from an OAuth2 token endpoint.

    Uses the client credentials grant, or the refresh_token grant when the
    flow is ``authorization_code`` and a refresh token is configured.

    Attributes:
        auth: The OAuth2 configuration.
        access_token: The cached token, None before the first refresh.
        expiry: Clock reading at which the token expires.
        refresh_count: Number of successful token requests.
    """

    def __init__(
        self,
        auth: OAuth2Auth,
        resolver: SecretResolver,
        context: Optional[TenantSecretContext] = None,
        refresh_buffer_seconds: float = 30.0,
        timeout: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.auth = auth
        self.resolver = resolver
        self.context = context
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self.timeout = timeout
        self._session = session
        self._clock = clock
        self._lock = asyncio.Lock()
        self._rotated_refresh_token: Optional[str] = None
        self.access_token: Optional[str] = None
        self.expiry: float = 0.0
        self.refresh_count = 0

    def needs_refresh(self) -> bool:
        return self.access_token is None or self._clock() >= self.expiry - self.refresh_buffer_seconds

    async def apply(self, request: SynthesizedRequest) -> None:
        await self.refresh_if_needed()
        request.headers["Authorization"] = f"Bearer {self.access_token}"

    async def refresh_if_needed(self) -> bool:
        if not self.needs_refresh():
            return False
        async with self._lock:
            # Another caller may have refreshed while this one waited
            if not self.needs_refresh():
                return False
            await self._refresh()
            return True

    async def _token_request_data(self) -> Dict[str, str]:
        client_id = await self.resolver.resolve(self.auth.client_id, self.context)
        client_secret = await self.resolver.resolve(self.auth.client_secret, self.context)
        data = {"client_id": client_id, "client_secret": client_secret}

        refresh_token = self._rotated_refresh_token
        if refresh_token is None and self.auth.flow == "authorization_code" and self.auth.refresh_token is not None:
            refresh_token = await self.resolver.resolve(self.auth.refresh_token, self.context)
        if refresh_token is not None:
            data.update(grant_type="refresh_token", refresh_token=refresh_token)
        else:
            data["grant_type"] = "client_credentials"

        if self.auth.scopes:
            data["scope"] = " ".join(self.auth.scopes)
        return data

    async def _refresh(self) -> None:
        data = await self._token_request_data()
        logger.info(f"Requesting OAuth2 token from {self.auth.token_url} ({data['grant_type']} grant)")
        if self._session is not None:
            token_response = await self._post(self._session, data)
        else:
            async with aiohttp.ClientSession() as session:
                token_response = await self._post(session, data)

        access_token = token_response.get("access_token")
        if not access_token:
            raise AuthResolutionError(f"Token response from {self.auth.token_url} has no access_token")
        try:
            expires_in = float(token_response.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self.access_token = str(access_token)
        self.expiry = self._clock() + expires_in
        if token_response.get("refresh_token"):
            self._rotated_refresh_token = str(token_response["refresh_token"])
        self.refresh_count += 1
        logger.info(f"Obtained OAuth2 token from {self.auth.token_url}, expires in {expires_in:.0f}s")

    async def _post(self, session: aiohttp.ClientSession, data: Dict[str, str]) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout) if self.timeout else None
        try:
            async with session.post(self.auth.token_url, data=data, timeout=timeout,
                                    headers={"Accept": "application/json"}) as response:
                if not 200 <= response.status < 300:
                    raise AuthResolutionError(
                        f"Token endpoint {self.auth.token_url} returned {response.status} {response.reason}"
                    )
                try:
                    token_response = await response.json(content_type=None)
                except ValueError as e:
                    raise AuthResolutionError(f"Token endpoint {self.auth.token_url} returned invalid JSON") from e
        except aiohttp.ClientError as e:
            logger.error(f"OAuth2 token request to {self.auth.token_url} failed: {e}")
            raise
        if not isinstance(token_response, dict):
            raise AuthResolutionError(f"Token endpoint {self.auth.token_url} returned an unexpected payload")
        return token_response
