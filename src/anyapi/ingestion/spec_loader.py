"""Format sniffing and ingestor dispatch.

Downloaded text is checked in a fixed order: Postman collection first (it
is JSON with a recognisable ``info`` block), then GraphQL SDL, and anything
else is handed to the OpenAPI ingestor.
"""

import logging
from typing import Callable, Dict, Literal, Optional
from urllib.parse import urlparse

from anyapi.data.anyapi_config import AnyApiConfig
from anyapi.data.registration import Registration
from anyapi.exceptions import SpecParseError
from anyapi.ingestion.collection_ingestor import CollectionIngestor, is_postman_collection
from anyapi.ingestion.graphql_ingestor import GraphQLIngestor, is_graphql_schema
from anyapi.ingestion.http_fetch import fetch_text
from anyapi.ingestion.openapi_ingestor import OpenApiIngestor
from anyapi.security.url_validator import validate_external_url

logger = logging.getLogger(__name__)

DocumentKind = Literal["postman", "graphql-sdl", "openapi"]


def detect_format(text: str) -> DocumentKind:
    if is_postman_collection(text):
        return "postman"
    if is_graphql_schema(text):
        return "graphql-sdl"
    return "openapi"


class SpecLoader:
    """REQUIRED
    Fetches API descriptions and routes them to the matching ingestor.

    Attributes:
        config: Engine configuration (depth limit, timeouts).
        url_validator: Check applied to every URL before it is fetched.
    """

    def __init__(self, config: Optional[AnyApiConfig] = None,
                 url_validator: Callable[[str], str] = validate_external_url):
        self.config = config or AnyApiConfig()
        self.url_validator = url_validator
        self.openapi = OpenApiIngestor(max_depth=self.config.schema_max_depth,
                                       timeout=self.config.spec_fetch_timeout_seconds)
        self.graphql = GraphQLIngestor(timeout=self.config.spec_fetch_timeout_seconds)
        self.collections = CollectionIngestor(timeout=self.config.spec_fetch_timeout_seconds)

    def load_content(self, text: str, source_url: Optional[str] = None, base_url: Optional[str] = None,
                     name: Optional[str] = None, graphql_url: Optional[str] = None) -> Registration:
        """Ingest already-downloaded description text.

        Args:
            text: The description.
            source_url: Where the text came from, if anywhere.
            base_url: Overrides the base URL the description declares.
            name: Display name for GraphQL SDL, which carries none.
            graphql_url: Endpoint URL used for GraphQL SDL when no ``base_url``
                is given. Defaults to ``/graphql`` on the source host.
        """
        kind = detect_format(text)
        logger.info(f"Detected {kind} description{f' at {source_url}' if source_url else ''}")
        if kind == "postman":
            registration = self.collections.parse_from_json(text, source_url=source_url)
            if base_url:
                registration.base_url = base_url.rstrip("/")
            return registration
        if kind == "graphql-sdl":
            endpoint_url = base_url or graphql_url or self._graphql_url_for(source_url)
            registration = self.graphql.parse_from_sdl(text, endpoint_url, name=name)
            registration.spec_url = source_url
            return registration
        return self.openapi.parse_stream(text, base_url=base_url, spec_url=source_url)

    async def load_url(self, spec_url: str, base_url: Optional[str] = None,
                       graphql_url: Optional[str] = None) -> Registration:
        """Fetch ``spec_url`` and ingest it."""
        self.url_validator(spec_url)
        text, _ = await fetch_text(spec_url, timeout=self.config.spec_fetch_timeout_seconds)
        return self.load_content(text, source_url=spec_url, base_url=base_url, graphql_url=graphql_url)

    async def load_graphql_endpoint(self, url: str, headers: Optional[Dict[str, str]] = None) -> Registration:
        self.url_validator(url)
        return await self.graphql.parse_from_endpoint(url, headers=headers)

    @staticmethod
    def _graphql_url_for(source_url: Optional[str]) -> str:
        if not source_url:
            raise SpecParseError("GraphQL SDL needs the URL of the GraphQL endpoint it describes")
        parsed = urlparse(source_url)
        return f"{parsed.scheme}://{parsed.netloc}/graphql"
