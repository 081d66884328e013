"""Dynamic invocation of registered endpoints over HTTP."""

import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from anyapi.auth_strategies.auth_strategy_factory import AuthStrategyFactory
from anyapi.data.anyapi_config import AnyApiConfig
from anyapi.data.api_response import ApiResponse
from anyapi.data.endpoint import Endpoint
from anyapi.data.registration import Registration
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.invocation.request_synthesizer import SynthesizedRequest, synthesize_request

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d - %(message)s"
)

logger = logging.getLogger(__name__)


class DynamicApiClient:
    """REQUIRED
    Executes one endpoint of a registration.

    Synthesizes the request, applies the registration's auth strategy, adds
    default ``User-Agent`` and ``Accept`` headers and sends it. Any HTTP
    status is returned as an ApiResponse; only transport failures raise.

    Attributes:
        strategy_factory: Source of auth strategies.
        config: Supplies the User-Agent and the default timeout.
    """

    def __init__(self, strategy_factory: AuthStrategyFactory, config: Optional[AnyApiConfig] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.strategy_factory = strategy_factory
        self.config = config or AnyApiConfig()
        self._session = session

    async def prepare(
        self,
        registration: Registration,
        endpoint: Endpoint,
        parameters: Optional[Mapping[str, Any]] = None,
        context: Optional[TenantSecretContext] = None,
    ) -> SynthesizedRequest:
        """Build the authenticated request without sending it.

        Raises:
            InvocationValidationError: If required inputs are missing.
            AuthResolutionError: If credentials cannot be produced.
        """
        request = synthesize_request(registration.base_url, endpoint, parameters)
        strategy = self.strategy_factory.create(registration.auth, context)
        await strategy.apply(request)
        if not request.has_header("User-Agent"):
            request.headers["User-Agent"] = self.config.user_agent
        if not request.has_header("Accept"):
            request.headers["Accept"] = "application/json"
        return request

    async def execute(
        self,
        registration: Registration,
        endpoint: Endpoint,
        parameters: Optional[Mapping[str, Any]] = None,
        context: Optional[TenantSecretContext] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        """REQUIRED
        Invoke ``endpoint`` with ``parameters``.

        Args:
            registration: The registration the endpoint belongs to.
            endpoint: The endpoint to call.
            parameters: Parameter values by name.
            context: Tenant context for encrypted secrets.
            timeout: Total timeout in seconds, the configured one when omitted.

        Returns:
            The response, successful or not.

        Raises:
            InvocationValidationError: If required inputs are missing.
            AuthResolutionError: If credentials cannot be produced.
            aiohttp.ClientError: On transport failures.
        """
        request = await self.prepare(registration, endpoint, parameters, context)
        logger.info(f"Invoking {endpoint.operation_id} of '{registration.id}': {request.method} {request.url.split('?', 1)[0]}")
        if self._session is not None:
            return await self._send(self._session, request, timeout)
        async with aiohttp.ClientSession() as session:
            return await self._send(session, request, timeout)

    async def _send(self, session: aiohttp.ClientSession, request: SynthesizedRequest,
                    timeout: Optional[float]) -> ApiResponse:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.config.http_timeout_seconds)
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                cookies=request.cookies or None,
                data=request.body.encode("utf-8") if request.body is not None else None,
                timeout=client_timeout,
            ) as response:
                text = await response.text()
                return ApiResponse(
                    status_code=response.status,
                    reason=response.reason,
                    headers=self._headers(response),
                    body=self._decode_body(text, response.headers.get("Content-Type", "")),
                )
        except aiohttp.ClientError as e:
            logger.error(f"Error sending {request.method} {request.url.split('?', 1)[0]}: {e}")
            raise

    @staticmethod
    def _headers(response: aiohttp.ClientResponse) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for key, value in response.headers.items():
            headers[key] = f"{headers[key]}, {value}" if key in headers else value
        return headers

    @staticmethod
    def _decode_body(text: str, content_type: str) -> Any:
        if not text:
            return None
        if "json" in content_type.lower():
            try:
                return json.loads(text)
            except ValueError:
                logger.error("Response declared JSON but could not be decoded, returning text")
                return text
        return text
