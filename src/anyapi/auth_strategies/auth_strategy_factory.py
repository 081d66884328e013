import hashlib
import logging
import threading
from typing import Dict, Optional

import aiohttp

from anyapi.auth_strategies.api_key_strategy import ApiKeyStrategy
from anyapi.auth_strategies.basic_strategy import BasicStrategy
from anyapi.auth_strategies.bearer_strategy import BearerStrategy
from anyapi.auth_strategies.no_auth_strategy import NoAuthStrategy
from anyapi.auth_strategies.oauth2_strategy import OAuth2Strategy
from anyapi.data.anyapi_config import AnyApiConfig
from anyapi.data.auth import AuthConfig
from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.exceptions import AuthResolutionError
from anyapi.interfaces.auth_strategy import AuthStrategy
from anyapi.secrets.secret_resolver import SecretResolver

logger = logging.getLogger(__name__)


def _client_key_prefix(auth: OAuth2Auth) -> str:
    client_id = auth.client_id.encrypted_value if auth.client_id.is_encrypted else auth.client_id.secret_name
    secret_id = hashlib.sha256(client_id.encode("utf-8")).hexdigest()[:16]
    return f"{auth.token_url}:{secret_id}:"


def oauth2_cache_key(auth: OAuth2Auth, context: Optional[TenantSecretContext] = None) -> str:
    """Key identifying one OAuth2 client of one tenant at one token endpoint.

    The client id is hashed from its ciphertext or vault name, never from
    its plaintext.
    """
    tenant = context.tenant_id if context is not None else "global"
    return _client_key_prefix(auth) + tenant


class AuthStrategyFactory:
    """REQUIRED
    Builds the AuthStrategy for an auth configuration.

    Stateless strategies are created per call. OAuth2 strategies carry a
    token and are cached process-wide by ``oauth2_cache_key`` so every
    invocation for the same client shares one token and one refresh lock.

    Attributes:
        resolver: Secret resolution shared by every strategy.
        config: Supplies the refresh buffer and timeouts.
    """

    def __init__(self, resolver: SecretResolver, config: Optional[AnyApiConfig] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.resolver = resolver
        self.config = config or AnyApiConfig()
        self._session = session
        self._oauth2_cache: Dict[str, OAuth2Strategy] = {}
        self._cache_lock = threading.Lock()

    def create(self, auth: Optional[AuthConfig], context: Optional[TenantSecretContext] = None) -> AuthStrategy:
        """REQUIRED
        Return the strategy for ``auth``.

        Raises:
            AuthResolutionError: If the variant is unknown or it holds
                encrypted secrets and no tenant context is given.
        """
        if auth is None or isinstance(auth, NoAuth):
            return NoAuthStrategy()

        if context is None and any(ref.is_encrypted for ref in auth.secret_fields().values()):
            raise AuthResolutionError(f"{auth.auth_type} auth has encrypted secrets and requires tenant context")

        if isinstance(auth, ApiKeyAuth):
            return ApiKeyStrategy(auth, self.resolver, context)
        if isinstance(auth, BearerAuth):
            return BearerStrategy(auth, self.resolver, context)
        if isinstance(auth, BasicAuth):
            return BasicStrategy(auth, self.resolver, context)
        if isinstance(auth, OAuth2Auth):
            return self._oauth2(auth, context)
        raise AuthResolutionError(f"Unsupported auth type: {auth.auth_type}")

    def _oauth2(self, auth: OAuth2Auth, context: Optional[TenantSecretContext]) -> OAuth2Strategy:
        key = oauth2_cache_key(auth, context)
        with self._cache_lock:
            strategy = self._oauth2_cache.get(key)
            if strategy is not None and strategy.auth != auth:
                # Same client, changed secret, scopes or flow
                logger.info(f"Replacing cached OAuth2 token {key} after an auth change")
                strategy = None
            if strategy is None:
                strategy = OAuth2Strategy(
                    auth,
                    self.resolver,
                    context,
                    refresh_buffer_seconds=self.config.oauth2_refresh_buffer_seconds,
                    timeout=self.config.http_timeout_seconds,
                    session=self._session,
                )
                self._oauth2_cache[key] = strategy
            return strategy

    def invalidate_oauth2(self, cache_key: str) -> bool:
        """Drop a cached OAuth2 strategy. Returns True if one was cached."""
        with self._cache_lock:
            removed = self._oauth2_cache.pop(cache_key, None) is not None
        if removed:
            logger.info(f"Invalidated cached OAuth2 token {cache_key}")
        return removed

    def invalidate_for(self, auth: Optional[AuthConfig], context: Optional[TenantSecretContext] = None) -> bool:
        """Drop cached OAuth2 strategies of the client ``auth`` names.

        With a context only that tenant's entry goes; without one the entry
        of every tenant using the client does. Returns True if any was dropped.
        """
        if not isinstance(auth, OAuth2Auth):
            return False
        if context is not None:
            return self.invalidate_oauth2(oauth2_cache_key(auth, context))
        prefix = _client_key_prefix(auth)
        with self._cache_lock:
            keys = [key for key in self._oauth2_cache if key.startswith(prefix)]
            for key in keys:
                del self._oauth2_cache[key]
        for key in keys:
            logger.info(f"Invalidated cached OAuth2 token {key}")
        return bool(keys)

    @property
    def cached_oauth2_count(self) -> int:
        with self._cache_lock:
            return len(self._oauth2_cache)
