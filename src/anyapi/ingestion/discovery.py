"""Discovery of OpenAPI description URLs for a bare API base URL.

Popular APIs that don't serve their description from the API host are
looked up in a table first. Otherwise a HEAD request is sent to each common
description path and the first one answering 2xx with a JSON, YAML or text
content type wins.
"""

import asyncio
import logging
from typing import Callable, Dict, List, NamedTuple, Optional
from urllib.parse import urlparse

import aiohttp

from anyapi.exceptions import UnsafeUrlError
from anyapi.security.url_validator import validate_external_url

logger = logging.getLogger(__name__)

COMMON_SPEC_PATHS = (
    "/openapi.json",
    "/openapi.yaml",
    "/swagger.json",
    "/swagger.yaml",
    "/api-docs",
    "/v3/api-docs",
    "/.well-known/openapi.json",
    "/.well-known/openapi.yaml",
    "/api/openapi.json",
    "/api/swagger.json",
)

ACCEPTED_CONTENT_TYPES = ("json", "yaml", "text")


class WellKnownApi(NamedTuple):
    name: str
    spec_url: str


WELL_KNOWN_APIS: Dict[str, WellKnownApi] = {
    "api.github.com": WellKnownApi(
        "GitHub REST API",
        "https://raw.githubusercontent.com/github/rest-api-description/main/descriptions/api.github.com/api.github.com.json"),
    "api.stripe.com": WellKnownApi(
        "Stripe API",
        "https://raw.githubusercontent.com/stripe/openapi/master/openapi/spec3.json"),
    "api.openai.com": WellKnownApi(
        "OpenAI API",
        "https://raw.githubusercontent.com/openai/openai-openapi/master/openapi.yaml"),
    "api.slack.com": WellKnownApi(
        "Slack Web API",
        "https://raw.githubusercontent.com/slackapi/slack-api-specs/master/web-api/slack_web_openapi_v2.json"),
    "api.twilio.com": WellKnownApi(
        "Twilio API",
        "https://raw.githubusercontent.com/twilio/twilio-oai/main/spec/json/twilio_api_v2010.json"),
    "graph.microsoft.com": WellKnownApi(
        "Microsoft Graph API",
        "https://raw.githubusercontent.com/microsoftgraph/msgraph-metadata/master/openapi/v1.0/openapi.yaml"),
    "api.spotify.com": WellKnownApi(
        "Spotify Web API",
        "https://raw.githubusercontent.com/sonallux/spotify-web-api/main/fixed-spotify-open-api.yml"),
    "discord.com/api": WellKnownApi(
        "Discord API",
        "https://raw.githubusercontent.com/discord/discord-api-spec/main/specs/openapi.json"),
    "api.notion.com": WellKnownApi(
        "Notion API",
        "https://raw.githubusercontent.com/NotionX/notion-openapi/main/openapi.json"),
    "api.cloudflare.com": WellKnownApi(
        "Cloudflare API",
        "https://raw.githubusercontent.com/cloudflare/api-schemas/main/openapi.json"),
}


def get_well_known_spec(base_url: str) -> Optional[WellKnownApi]:
    """Look up ``base_url`` by host, then by host plus path."""
    parsed = urlparse(base_url.rstrip("/"))
    host = (parsed.hostname or "").lower()
    if not host:
        return None
    if host in WELL_KNOWN_APIS:
        return WELL_KNOWN_APIS[host]
    return WELL_KNOWN_APIS.get(f"{host}{parsed.path}".rstrip("/").lower())


def get_common_spec_urls(base_url: str) -> List[str]:
    normalized = base_url.rstrip("/")
    return [normalized + path for path in COMMON_SPEC_PATHS]


class OpenApiDiscovery:
    """Finds the description URL of an API from its base URL.

    Attributes:
        timeout: Timeout in seconds of each probe.
        url_validator: Check applied to every probed URL before it is contacted.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        url_validator: Callable[[str], str] = validate_external_url,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout = timeout
        self.url_validator = url_validator
        self._session = session

    async def discover(self, base_url: str) -> Optional[str]:
        """Return the first reachable description URL, or None."""
        candidates: List[str] = []
        well_known = get_well_known_spec(base_url)
        if well_known is not None:
            candidates.append(well_known.spec_url)
        candidates.extend(get_common_spec_urls(base_url))

        if self._session is not None:
            return await self._first_valid(self._session, candidates)
        async with aiohttp.ClientSession() as session:
            return await self._first_valid(session, candidates)

    async def _first_valid(self, session: aiohttp.ClientSession, candidates: List[str]) -> Optional[str]:
        for url in candidates:
            if await self.is_valid_spec(session, url):
                logger.info(f"Discovered API description at {url}")
                return url
        return None

    async def is_valid_spec(self, session: aiohttp.ClientSession, url: str) -> bool:
        try:
            self.url_validator(url)
        except UnsafeUrlError as e:
            logger.warning(f"Skipping discovery probe: {e}")
            return False
        try:
            async with session.head(url, allow_redirects=True,
                                    timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if not 200 <= response.status < 300:
                    return False
                content_type = response.headers.get("Content-Type", "").lower()
                return any(marker in content_type for marker in ACCEPTED_CONTENT_TYPES)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Discovery probe {url} failed: {e}")
            return False
