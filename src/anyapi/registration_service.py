"""Registration lifecycle and invocation entry point.

ApiRegistrationService is the surface the engine exposes to hosts: it
registers APIs from a base URL, a description URL or uploaded content,
keeps them fresh, manages their credentials and invokes their endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from anyapi.auth_strategies.auth_strategy_factory import AuthStrategyFactory
from anyapi.data.anyapi_config import AnyApiConfig
from anyapi.data.api_response import ApiResponse
from anyapi.data.auth import AuthConfig
from anyapi.data.endpoint import Endpoint
from anyapi.data.registration import Registration
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.exceptions import (
    ApiDisabledError,
    DuplicateRegistrationError,
    RegistrationNotFoundError,
    SpecParseError,
)
from anyapi.implementations.in_mem_registration_store import InMemRegistrationStore
from anyapi.ingestion.discovery import OpenApiDiscovery
from anyapi.ingestion.graphql_ingestor import looks_like_graphql_endpoint
from anyapi.ingestion.spec_loader import SpecLoader
from anyapi.interfaces.registration_store import RegistrationStore
from anyapi.interfaces.secret_store import SecretStore
from anyapi.invocation.api_client import DynamicApiClient
from anyapi.secrets.secret_crypto import SecretCrypto
from anyapi.secrets.secret_resolver import SecretResolver
from anyapi.security.url_validator import validate_external_url

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApiRegistrationService:
    """REQUIRED
    Registers, refreshes and invokes APIs on behalf of owners.

    Every operation is scoped by owner id; one owner can never see or call
    another owner's registrations.

    Attributes:
        config: Engine configuration.
        store: Registration persistence.
        resolver: Secret resolution and encryption.
        strategy_factory: Auth strategies, including the OAuth2 token cache.
        loader: Description download and ingestion.
        discovery: Description URL discovery.
        client: Dynamic HTTP invocation.
        url_validator: Check applied to user-supplied URLs.

    Example:
        ```python
        config = load_config(".env")
        service = ApiRegistrationService.create(config)
        registration = await service.register_api("tenant-1", "https://petstore3.swagger.io/api/v3")
        response = await service.invoke("tenant-1", registration.id, "getPetById", {"petId": 1})
        ```
    """

    def __init__(
        self,
        store: RegistrationStore,
        resolver: SecretResolver,
        config: Optional[AnyApiConfig] = None,
        strategy_factory: Optional[AuthStrategyFactory] = None,
        loader: Optional[SpecLoader] = None,
        discovery: Optional[OpenApiDiscovery] = None,
        client: Optional[DynamicApiClient] = None,
        url_validator: Callable[[str], str] = validate_external_url,
    ):
        self.config = config or AnyApiConfig()
        self.store = store
        self.resolver = resolver
        self.url_validator = url_validator
        self.strategy_factory = strategy_factory or AuthStrategyFactory(resolver, self.config)
        self.loader = loader or SpecLoader(self.config, url_validator=url_validator)
        self.discovery = discovery or OpenApiDiscovery(self.config.discovery_timeout_seconds,
                                                       url_validator=url_validator)
        self.client = client or DynamicApiClient(self.strategy_factory, self.config)

    @classmethod
    def create(cls, config: AnyApiConfig, store: Optional[RegistrationStore] = None,
               secret_store: Optional[SecretStore] = None) -> "ApiRegistrationService":
        """Wire a service from configuration with in-memory defaults."""
        crypto = SecretCrypto(config.master_key) if config.master_key else None
        return cls(
            store=store or InMemRegistrationStore(),
            resolver=SecretResolver(crypto, secret_store),
            config=config,
        )

    async def _require(self, owner_id: str, api_id: str) -> Registration:
        registration = await self.store.get(owner_id, api_id)
        if registration is None:
            raise RegistrationNotFoundError(owner_id, api_id)
        return registration

    async def _save_new(self, owner_id: str, registration: Registration) -> Registration:
        if await self.store.exists(owner_id, registration.id):
            raise DuplicateRegistrationError(owner_id, registration.id)
        now = _utc_now()
        registration.owner_id = owner_id
        registration.created_at = now
        registration.last_refreshed = now
        stored = await self.store.upsert(registration)
        logger.info(f"Registered API '{stored.id}' ({stored.spec_format}) for owner '{owner_id}' "
                    f"with {len(stored.endpoints)} endpoints")
        return stored

    async def register_api(self, owner_id: str, base_url: str, spec_url: Optional[str] = None) -> Registration:
        """REQUIRED
        Discover, ingest and store an API.

        A base URL that looks like a GraphQL endpoint is introspected.
        Otherwise the description is fetched from ``spec_url`` or, when it
        is omitted, from the first URL discovery finds.

        Raises:
            UnsafeUrlError: If a URL targets a blocked destination.
            SpecParseError: If no description is found or it cannot be ingested.
            DuplicateRegistrationError: If the owner already registered the API.
        """
        self.url_validator(base_url)
        if spec_url:
            self.url_validator(spec_url)

        target = spec_url or base_url
        if looks_like_graphql_endpoint(target):
            registration = await self.loader.load_graphql_endpoint(target)
        else:
            if not spec_url:
                spec_url = await self.discovery.discover(base_url)
                if spec_url is None:
                    raise SpecParseError(
                        f"Could not discover an API description at {base_url}. Please provide the description URL."
                    )
            registration = await self.loader.load_url(spec_url, graphql_url=base_url)
        return await self._save_new(owner_id, registration)

    async def register_from_content(self, owner_id: str, content: str, source_url: Optional[str] = None,
                                    base_url: Optional[str] = None) -> Registration:
        """REQUIRED
        Ingest uploaded description text and store it."""
        if base_url:
            self.url_validator(base_url)
        registration = self.loader.load_content(content, source_url=source_url, base_url=base_url)
        return await self._save_new(owner_id, registration)

    async def get_api(self, owner_id: str, api_id: str) -> Registration:
        return await self._require(owner_id, api_id)

    async def list_apis(self, owner_id: str) -> List[Registration]:
        return await self.store.get_all(owner_id)

    async def refresh_api(self, owner_id: str, api_id: str) -> Registration:
        """REQUIRED
        Re-ingest an API from its description URL.

        Identity, owner, auth, enabled state and creation time are kept, and
        every endpoint whose operation id survives keeps its enabled flag.

        Raises:
            RegistrationNotFoundError: If the API does not exist.
            SpecParseError: If the API has no description URL or it cannot be ingested.
            ConcurrencyConflictError: If the API changed while refreshing.
        """
        existing = await self._require(owner_id, api_id)
        if not existing.spec_url:
            raise SpecParseError(f"API '{api_id}' does not have a description URL to refresh from")

        if existing.spec_format == "graphql":
            refreshed = await self.loader.load_graphql_endpoint(existing.spec_url)
        else:
            refreshed = await self.loader.load_url(existing.spec_url, graphql_url=existing.base_url)

        enabled_by_operation = {e.operation_id: e.is_enabled for e in existing.endpoints}
        for endpoint in refreshed.endpoints:
            if endpoint.operation_id in enabled_by_operation:
                endpoint.is_enabled = enabled_by_operation[endpoint.operation_id]

        refreshed = refreshed.model_copy(update={
            "id": existing.id,
            "owner_id": owner_id,
            "is_enabled": existing.is_enabled,
            "auth": existing.auth,
            "created_at": existing.created_at,
            "last_refreshed": _utc_now(),
            "etag": existing.etag,
        })
        stored = await self.store.upsert(refreshed)
        logger.info(f"Refreshed API '{api_id}' for owner '{owner_id}': {len(stored.endpoints)} endpoints")
        return stored

    async def update_auth(
        self,
        owner_id: str,
        api_id: str,
        auth: AuthConfig,
        plaintext_secrets: Optional[Mapping[str, str]] = None,
        context: Optional[TenantSecretContext] = None,
    ) -> Registration:
        """REQUIRED
        Replace the auth configuration of an API.

        Args:
            owner_id: Owner of the API.
            api_id: The API to update.
            auth: New configuration. Its secret fields may hold vault references.
            plaintext_secrets: Plaintext credentials by secret field name
                (e.g. ``{"client_secret": "..."}``), encrypted for the tenant
                before anything is stored.
            context: Tenant context, required when ``plaintext_secrets`` is given.

        Raises:
            RegistrationNotFoundError: If the API does not exist.
            AuthResolutionError: If secrets are given without a master key.
            ValueError: If a secret name is not a secret field of ``auth`` or
                secrets are given without a tenant context.
        """
        existing = await self._require(owner_id, api_id)
        if plaintext_secrets:
            if context is None:
                raise ValueError("Tenant context is required to store secrets")
            encrypted = {
                field: self.resolver.encrypt(value, context)
                for field, value in plaintext_secrets.items()
            }
            auth = auth.with_secrets(encrypted)

        self.strategy_factory.invalidate_for(existing.auth)
        existing.auth = auth
        stored = await self.store.upsert(existing)
        logger.info(f"Updated {auth.auth_type} auth of API '{api_id}' for owner '{owner_id}'")
        return stored

    async def delete_api(self, owner_id: str, api_id: str) -> bool:
        """REQUIRED
        Remove an API. Returns False if it did not exist."""
        existing = await self.store.get(owner_id, api_id)
        if existing is None:
            return False
        self.strategy_factory.invalidate_for(existing.auth)
        deleted = await self.store.delete(owner_id, api_id)
        if deleted:
            logger.info(f"Deleted API '{api_id}' for owner '{owner_id}'")
        return deleted

    async def toggle_api(self, owner_id: str, api_id: str, enabled: bool) -> Registration:
        """REQUIRED"""
        registration = await self._require(owner_id, api_id)
        registration.is_enabled = enabled
        return await self.store.upsert(registration)

    async def toggle_endpoint(self, owner_id: str, api_id: str, endpoint_id: str, enabled: bool) -> Endpoint:
        """REQUIRED
        Enable or disable one endpoint, found by endpoint id or operation id."""
        endpoint = await self.store.get_endpoint(owner_id, api_id, endpoint_id)
        if endpoint is None:
            raise RegistrationNotFoundError(owner_id, api_id, endpoint_id)
        endpoint.is_enabled = enabled
        if not await self.store.update_endpoint(owner_id, api_id, endpoint):
            raise RegistrationNotFoundError(owner_id, api_id, endpoint_id)
        return endpoint

    async def invoke(
        self,
        owner_id: str,
        api_id: str,
        operation_id: str,
        parameters: Optional[Mapping[str, Any]] = None,
        context: Optional[TenantSecretContext] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        """REQUIRED
        Invoke one operation of a registered API.

        Raises:
            RegistrationNotFoundError: If the API or operation does not exist.
            ApiDisabledError: If the API or operation is disabled.
            InvocationValidationError: If required inputs are missing.
            AuthResolutionError: If credentials cannot be produced.
        """
        registration = await self._require(owner_id, api_id)
        if not registration.is_enabled:
            raise ApiDisabledError(api_id)
        endpoint = registration.get_endpoint(operation_id)
        if endpoint is None:
            raise RegistrationNotFoundError(owner_id, api_id, operation_id)
        if not endpoint.is_enabled:
            raise ApiDisabledError(api_id, operation_id)
        return await self.client.execute(registration, endpoint, parameters, context, timeout)

    def list_tools(self, registration: Registration) -> Dict[str, Endpoint]:
        """Enabled endpoints of a registration keyed by tool name."""
        return {
            endpoint.get_tool_name(registration.id): endpoint
            for endpoint in registration.endpoints
            if endpoint.is_enabled
        }
