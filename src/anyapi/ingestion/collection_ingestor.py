"""Postman collection ingestion.

Flattens the folder tree of a collection export into endpoints tagged with
their top-level folder. Postman's ``:name`` path segments and unresolved
``{{name}}`` variables become ``{name}`` path placeholders; variables that
resolve to a concrete value are substituted.
"""

import json
import logging
import re
from typing import Any, List, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.data.endpoint import Endpoint, Parameter, RequestBodyDefinition, ResponseDefinition
from anyapi.data.registration import Registration
from anyapi.data.schema import SimplifiedSchema
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import SpecParseError
from anyapi.ingestion.collection_models import (
    PostmanAuth,
    PostmanCollection,
    PostmanItem,
    PostmanKeyValue,
    PostmanRequest,
    PostmanUrl,
)
from anyapi.ingestion.http_fetch import fetch_text
from anyapi.ingestion.identifiers import UniqueIdAllocator, generate_registration_id, to_slug

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.example.com"

BASE_URL_VARIABLES = ("baseUrl", "base_url", "host")

EXCLUDED_HEADERS = {"content-type", "accept", "authorization", "user-agent"}

_VARIABLE = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")
_COLON_PARAM = re.compile(r"(?<=/):([^/{}?#:]+)")
_PATH_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")
_URL_VARIABLE_TYPES = {"string", "number", "integer", "boolean"}


def is_postman_collection(text: str) -> bool:
    """Whether ``text`` is a Postman collection export."""
    try:
        document = json.loads(text)
    except (TypeError, ValueError):
        return False
    if not isinstance(document, dict):
        return False
    info = document.get("info")
    if isinstance(info, dict):
        schema = info.get("schema")
        if isinstance(schema, str) and "postman" in schema.lower():
            return True
        if "_postman_id" in info:
            return True
    items = document.get("item")
    if isinstance(items, list):
        return any(isinstance(i, dict) and "request" in i for i in items)
    return False


def infer_schema(example: Any) -> SimplifiedSchema:
    """Infer a schema from a decoded JSON example value."""
    if isinstance(example, dict):
        return SimplifiedSchema(
            type="object",
            properties={str(k): infer_schema(v) for k, v in example.items()},
        )
    if isinstance(example, list):
        return SimplifiedSchema(
            type="array",
            items=infer_schema(example[0]) if example else SimplifiedSchema(type="object"),
        )
    if isinstance(example, bool):
        return SimplifiedSchema(type="boolean")
    if isinstance(example, int):
        return SimplifiedSchema(type="integer")
    if isinstance(example, float):
        return SimplifiedSchema(type="number")
    return SimplifiedSchema(type="string")


def infer_schema_from_text(raw: str) -> SimplifiedSchema:
    try:
        return infer_schema(json.loads(raw))
    except ValueError:
        return SimplifiedSchema(type="object")


class CollectionConverter:
    """Converts one validated Postman collection into a Registration."""

    def __init__(self, collection: PostmanCollection, source_url: Optional[str] = None):
        self.collection = collection
        self.source_url = source_url
        self.variables = collection.variables()

    def convert(self) -> Registration:
        name = self.collection.info.name or "Postman Collection"
        flattened = list(self._flatten(self.collection.item, []))
        base_url = self._base_url([item.request for item, _ in flattened])
        api_id = generate_registration_id(name, self.source_url or base_url)

        ids = UniqueIdAllocator()
        endpoints = []
        for item, folders in flattened:
            endpoint = self._create_endpoint(ids, item, folders)
            if endpoint is not None:
                endpoints.append(endpoint)

        registration = Registration(
            id=api_id,
            display_name=name,
            base_url=base_url,
            spec_url=self.source_url,
            spec_format="postman-2.1",
            description=self.collection.info.description,
            auth=self._convert_auth(self.collection.auth, api_id),
            endpoints=endpoints,
        )
        logger.info(f"Converted Postman collection '{name}' into {len(endpoints)} endpoints")
        return registration

    def _flatten(self, items: List[PostmanItem], folders: List[str]):
        for item in items:
            if item.is_folder:
                yield from self._flatten(item.item or [], folders + [item.name])
            elif item.request is not None:
                yield item, folders

    def _resolved_variable(self, name: str) -> Optional[str]:
        value = self.variables.get(name)
        if value and "{{" not in value:
            return value
        return None

    def _substitute(self, text: str) -> str:
        """Replace resolvable {{variables}} with their value and the rest with {name}."""
        def _replace(match: re.Match) -> str:
            value = self._resolved_variable(match.group(1))
            return value if value is not None else "{" + match.group(1) + "}"
        return _VARIABLE.sub(_replace, text)

    def _base_url(self, requests: List[PostmanRequest]) -> str:
        for variable in BASE_URL_VARIABLES:
            value = self._resolved_variable(variable)
            if value:
                if not urlparse(value).scheme:
                    value = f"https://{value}"
                return value.rstrip("/")

        for request in requests:
            url = request.url
            if url is None:
                continue
            if url.host:
                host = self._substitute(".".join(url.host))
                if "{" not in host:
                    protocol = url.protocol or "https"
                    port = f":{url.port}" if url.port else ""
                    return f"{protocol}://{host}{port}"
            if url.raw:
                parsed = urlparse(self._substitute(url.raw))
                if parsed.scheme and parsed.netloc and "{" not in parsed.netloc:
                    return f"{parsed.scheme}://{parsed.netloc}"
            break
        return DEFAULT_BASE_URL

    def build_path(self, url: PostmanUrl) -> str:
        if url.path:
            return "/" + "/".join(self._path_segment(segment) for segment in url.path)
        if url.raw:
            raw = url.raw.split("#", 1)[0]
            leading = _VARIABLE.match(raw)
            if leading and leading.group(1) in BASE_URL_VARIABLES:
                # The base URL variable already carries host and base path
                raw = raw[leading.end():]
            raw = self._substitute(raw)
            parsed = urlparse(raw)
            if parsed.scheme and parsed.netloc:
                path = parsed.path
            else:
                # Host came from an unresolved variable; drop everything up to the first slash after it
                without_query = raw.split("?", 1)[0]
                slash = without_query.find("/", without_query.find("}") + 1 if without_query.startswith("{") else 0)
                path = without_query[slash:] if slash >= 0 else "/"
            path = _COLON_PARAM.sub(r"{\1}", path)
            return path or "/"
        return "/"

    def _path_segment(self, segment: str) -> str:
        if segment.startswith(":"):
            return "{" + segment[1:] + "}"
        return self._substitute(segment)

    def _create_endpoint(self, ids: UniqueIdAllocator, item: PostmanItem, folders: List[str]) -> Optional[Endpoint]:
        request = item.request
        if request is None or request.url is None:
            return None
        path = self.build_path(request.url)
        operation_id = ids.allocate(f"{request.method.lower()}-{to_slug(item.name)}")

        parameters = self._path_parameters(path, request.url.variable)
        parameters.extend(
            Parameter(name=q.key, location="query", required=False, description=q.description,
                      schema_=SimplifiedSchema(type="string"))
            for q in request.url.query if not q.disabled and q.key
        )
        parameters.extend(
            Parameter(name=h.key, location="header", required=False, description=h.description,
                      schema_=SimplifiedSchema(type="string"))
            for h in request.header
            if not h.disabled and h.key and h.key.lower() not in EXCLUDED_HEADERS
        )

        return Endpoint(
            id=operation_id,
            operation_id=operation_id,
            method=request.method,
            path=path,
            summary=item.name or None,
            description=request.description or item.description,
            tags=[folders[0]] if folders else ["default"],
            parameters=parameters,
            request_body=self._request_body(request),
            responses={"200": ResponseDefinition(description="Successful response")},
        )

    @staticmethod
    def _path_parameters(path: str, url_variables: List[PostmanKeyValue]) -> List[Parameter]:
        by_name = {v.key.lower(): v for v in url_variables}
        parameters = []
        seen = set()
        for name in _PATH_PLACEHOLDER.findall(path):
            if name in seen:
                continue
            seen.add(name)
            variable = by_name.get(name.lower())
            param_type = variable.type if variable is not None and variable.type in _URL_VARIABLE_TYPES else "string"
            parameters.append(Parameter(
                name=name,
                location="path",
                required=True,
                description=variable.description if variable is not None else None,
                schema_=SimplifiedSchema(type=param_type),
                example=variable.value if variable is not None and variable.value else None,
            ))
        return parameters

    @staticmethod
    def _request_body(request: PostmanRequest) -> Optional[RequestBodyDefinition]:
        body = request.body
        if body is None:
            return None
        if body.raw:
            return RequestBodyDefinition(
                required=True,
                description="Request body",
                content={"application/json": infer_schema_from_text(body.raw)},
            )
        fields, media_type = None, None
        if body.formdata is not None:
            fields, media_type = body.formdata, "multipart/form-data"
        elif body.urlencoded is not None:
            fields, media_type = body.urlencoded, "application/x-www-form-urlencoded"
        if fields is None:
            return None
        properties = {
            f.key: SimplifiedSchema(
                type="string",
                format="binary" if f.type == "file" else None,
                description=f.description,
            )
            for f in fields if not f.disabled and f.key
        }
        return RequestBodyDefinition(
            required=True,
            content={media_type: SimplifiedSchema(type="object", properties=properties or None)},
        )

    @staticmethod
    def _convert_auth(auth: Optional[PostmanAuth], api_id: str) -> AuthConfig:
        if auth is None:
            return NoAuth()
        auth_type = auth.type.lower()
        if auth_type == "bearer":
            return BearerAuth(name="bearer", secret=SecretReference.vault(f"{api_id}-token"))
        if auth_type == "apikey":
            location = (auth.get("in") or "header").lower()
            return ApiKeyAuth(
                name="apikey",
                location=location if location in ("header", "query", "cookie") else "header",
                parameter_name=auth.get("key") or "X-API-Key",
                secret=SecretReference.vault(f"{api_id}-apikey"),
            )
        if auth_type == "basic":
            return BasicAuth(
                name="basic",
                username=SecretReference.vault(f"{api_id}-username"),
                password=SecretReference.vault(f"{api_id}-password"),
            )
        if auth_type == "oauth2":
            token_url = auth.get("accessTokenUrl")
            if not token_url:
                logger.warning("Postman OAuth2 auth has no accessTokenUrl, registering without auth")
                return NoAuth()
            scope = auth.get("scope") or ""
            return OAuth2Auth(
                name="oauth2",
                flow="client_credentials",
                token_url=token_url,
                client_id=SecretReference.vault(f"{api_id}-clientid"),
                client_secret=SecretReference.vault(f"{api_id}-clientsecret"),
                scopes=scope.split(),
            )
        if auth_type != "noauth":
            logger.warning(f"Postman auth type '{auth.type}' is not supported, registering without auth")
        return NoAuth()


class CollectionIngestor:
    """REQUIRED
    Ingests Postman collection exports.

    Attributes:
        timeout: Download timeout in seconds.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def parse_from_json(self, text: str, source_url: Optional[str] = None) -> Registration:
        """Convert collection JSON text.

        Raises:
            SpecParseError: If the text is not a decodable collection.
        """
        try:
            document = json.loads(text)
        except ValueError as e:
            raise SpecParseError(f"Collection is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise SpecParseError("Collection must be a JSON object")
        try:
            collection = PostmanCollection.model_validate(document)
        except ValidationError as e:
            raise SpecParseError(f"Invalid Postman collection: {e}") from e
        return CollectionConverter(collection, source_url).convert()

    async def parse_url(self, url: str) -> Registration:
        text, _ = await fetch_text(url, timeout=self.timeout)
        return self.parse_from_json(text, source_url=url)
