"""OpenAPI 3.x and Swagger 2.0 ingestion.

This module converts OpenAPI documents (JSON or YAML) into Registrations of
the canonical model. It resolves parameter, body and response references,
normalizes every schema, merges path-level and operation-level parameters
and maps the first declared security scheme to an authentication config.

Key Features:
    - OpenAPI 3.0/3.1 and Swagger 2.0 support
    - Server variable substitution and Swagger host/basePath handling
    - Implicit path parameters for undeclared ``{placeholders}``
    - Swagger 2.0 ``body`` and ``formData`` parameters as request bodies
    - Tolerance of duplicate templated path signatures
"""

import json
import logging
import re
from typing import Any, BinaryIO, Dict, List, Optional, TextIO, Tuple, Union
from urllib.parse import urljoin, urlparse

import aiohttp
import yaml

from anyapi.data.auth import AuthConfig
from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.data.endpoint import Endpoint, Parameter, RequestBodyDefinition, ResponseDefinition
from anyapi.data.registration import Registration
from anyapi.data.schema import SimplifiedSchema
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import SpecParseError
from anyapi.ingestion.http_fetch import fetch_text
from anyapi.ingestion.identifiers import (
    UniqueIdAllocator,
    generate_registration_id,
    operation_id_to_endpoint_id,
)
from anyapi.ingestion.schema_normalizer import (
    DEFAULT_MAX_DEPTH,
    SchemaNormalizer,
    resolve_pointer,
    to_json_compatible,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

PARAMETER_LOCATIONS = ("path", "query", "header", "cookie")

# Diagnostics that never fail ingestion. Overlapping templated paths such as
# /users/{id} and /users/{name} are common in real documents.
TOLERATED_DIAGNOSTICS = (
    re.compile(r"^The path signature '.*' MUST be unique"),
)

_PATH_PLACEHOLDER = re.compile(r"\{([^}/]+)\}")
_SERVER_VARIABLE = re.compile(r"\{([^}]+)\}")

DocumentSource = Union[str, bytes, BinaryIO, TextIO]


def read_document(source: DocumentSource) -> Dict[str, Any]:
    """Decode a JSON or YAML document.

    Args:
        source: Document text, raw bytes or a readable stream.

    Returns:
        The decoded mapping.

    Raises:
        SpecParseError: If the text decodes to nothing or to a non-mapping.
    """
    if hasattr(source, "read"):
        source = source.read()
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise SpecParseError(f"Document is not valid UTF-8: {e}") from e
    if not isinstance(source, str) or not source.strip():
        raise SpecParseError("Document is empty")

    try:
        document = json.loads(source)
    except json.JSONDecodeError:
        try:
            document = yaml.safe_load(source)
        except yaml.YAMLError as e:
            raise SpecParseError(f"Document is neither valid JSON nor valid YAML: {e}") from e

    if not isinstance(document, dict):
        raise SpecParseError(f"Document must be a mapping, got {type(document).__name__}")
    return document


def is_tolerated(diagnostic: str) -> bool:
    return any(pattern.search(diagnostic) for pattern in TOLERATED_DIAGNOSTICS)


class OpenApiConverter:
    """Converts one decoded OpenAPI document into a Registration.

    Attributes:
        document: The decoded OpenAPI or Swagger document.
        spec_url: Where the document was retrieved from, used to resolve
            relative server URLs.
        base_url: Optional base URL overriding the document's servers.
        normalizer: Schema normalizer bound to this document.
    """

    def __init__(
        self,
        document: Dict[str, Any],
        spec_url: Optional[str] = None,
        base_url: Optional[str] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.document = document
        self.spec_url = spec_url
        self.base_url = base_url
        self.normalizer = SchemaNormalizer(document, max_depth)
        self.is_swagger = "swagger" in document

    def convert(self) -> Registration:
        """Parses the document and returns the Registration."""
        spec_format = self._spec_format()
        paths = self.document.get("paths")
        if not isinstance(paths, dict):
            raise SpecParseError("OpenAPI document has no 'paths' object")

        diagnostics = self.collect_diagnostics()
        fatal = [d for d in diagnostics if not is_tolerated(d)]
        if fatal:
            raise SpecParseError("OpenAPI document is invalid", fatal)
        for diagnostic in diagnostics:
            logger.warning(f"Ignoring OpenAPI diagnostic: {diagnostic}")

        info = self.document.get("info") if isinstance(self.document.get("info"), dict) else {}
        title = str(info.get("title") or "API")
        base_url = self._resolve_base_url()
        api_id = generate_registration_id(title, base_url)

        registration = Registration(
            id=api_id,
            display_name=title,
            base_url=base_url,
            spec_url=self.spec_url,
            spec_format=spec_format,
            api_version=str(info["version"]) if info.get("version") is not None else None,
            description=info.get("description") if isinstance(info.get("description"), str) else None,
            auth=self._extract_auth(api_id),
            endpoints=self._extract_endpoints(paths),
        )
        logger.info(f"Converted '{title}' ({spec_format}) into {len(registration.endpoints)} endpoints")
        return registration

    def _spec_format(self) -> str:
        if "openapi" in self.document:
            version = str(self.document["openapi"])
            if version.startswith("3.1"):
                return "openapi-3.1"
            if version.startswith("3"):
                return "openapi-3.0"
            raise SpecParseError(f"Unsupported OpenAPI version '{version}'")
        if "swagger" in self.document:
            version = str(self.document["swagger"])
            if version.startswith("2"):
                return "swagger-2.0"
            raise SpecParseError(f"Unsupported Swagger version '{version}'")
        raise SpecParseError("Document declares neither 'openapi' nor 'swagger' version")

    def collect_diagnostics(self) -> List[str]:
        """Structural problems of the ``paths`` object, as reader messages."""
        diagnostics: List[str] = []
        signatures: Dict[str, str] = {}
        for path, path_item in self.document.get("paths", {}).items():
            if not isinstance(path, str) or not path.startswith("/"):
                diagnostics.append(f"The path '{path}' MUST begin with a slash.")
                continue
            if not isinstance(path_item, dict):
                diagnostics.append(f"The path item '{path}' MUST be an object.")
                continue
            for method in HTTP_METHODS:
                if method in path_item and not isinstance(path_item[method], dict):
                    diagnostics.append(f"The operation '{method.upper()} {path}' MUST be an object.")
            signature = _PATH_PLACEHOLDER.sub("{}", path)
            if signature in signatures:
                diagnostics.append(
                    f"The path signature '{signature}' MUST be unique. "
                    f"Actual: '{signatures[signature]}' and '{path}'."
                )
            else:
                signatures[signature] = path
        return diagnostics

    def _resolve_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")

        if self.is_swagger:
            base_url = self._swagger_base_url()
        else:
            base_url = self._server_base_url()
        if not base_url:
            raise SpecParseError("No server URL found in OpenAPI document and no base URL was provided")
        return base_url.rstrip("/")

    def _server_base_url(self) -> Optional[str]:
        servers = self.document.get("servers")
        if not isinstance(servers, list) or not servers or not isinstance(servers[0], dict):
            return None
        server = servers[0]
        url = server.get("url")
        if not isinstance(url, str) or not url:
            return None

        variables = server.get("variables") if isinstance(server.get("variables"), dict) else {}

        def _substitute(match: re.Match) -> str:
            variable = variables.get(match.group(1))
            if isinstance(variable, dict) and variable.get("default") is not None:
                return str(variable["default"])
            return match.group(0)

        url = _SERVER_VARIABLE.sub(_substitute, url)
        if urlparse(url).scheme:
            return url
        if self.spec_url:
            return urljoin(self.spec_url, url)
        return None

    def _swagger_base_url(self) -> Optional[str]:
        host = self.document.get("host")
        base_path = self.document.get("basePath") or ""
        schemes = self.document.get("schemes") or []
        if host:
            if schemes:
                scheme = schemes[0]
            elif self.spec_url:
                scheme = urlparse(self.spec_url).scheme or "https"
            else:
                scheme = "https"
            return f"{scheme}://{host}{base_path}"
        if self.spec_url:
            parsed = urlparse(self.spec_url)
            return f"{parsed.scheme}://{parsed.netloc}{base_path}"
        return None

    def _resolve(self, node: Any) -> Any:
        """Follow ``$ref`` chains of non-schema objects (parameters, bodies, responses)."""
        seen = set()
        while isinstance(node, dict) and "$ref" in node:
            ref = node["$ref"]
            if ref in seen:
                return None
            seen.add(ref)
            node = resolve_pointer(self.document, ref)
        return node

    def _extract_endpoints(self, paths: Dict[str, Any]) -> List[Endpoint]:
        endpoints: List[Endpoint] = []
        operation_ids = UniqueIdAllocator()
        endpoint_ids = UniqueIdAllocator()

        for path, path_item in paths.items():
            path_item = self._resolve(path_item)
            if not isinstance(path_item, dict):
                continue
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, dict):
                    continue
                operation_id = operation.get("operationId")
                if not isinstance(operation_id, str) or not operation_id:
                    operation_id = self._generate_operation_id(method, path)
                operation_id = operation_ids.allocate(operation_id)
                endpoint_id = endpoint_ids.allocate(operation_id_to_endpoint_id(operation_id))
                endpoints.append(self._create_endpoint(endpoint_id, operation_id, method, path, path_item, operation))
        return endpoints

    @staticmethod
    def _generate_operation_id(method: str, path: str) -> str:
        parts = [p.strip("{}") for p in path.split("/") if p]
        return "_".join([method] + parts)

    def _create_endpoint(
        self,
        endpoint_id: str,
        operation_id: str,
        method: str,
        path: str,
        path_item: Dict[str, Any],
        operation: Dict[str, Any],
    ) -> Endpoint:
        parameters, request_body = self._extract_parameters(path, path_item, operation)
        if request_body is None and "requestBody" in operation:
            request_body = self._extract_request_body(operation["requestBody"])

        tags = [t for t in operation.get("tags", []) if isinstance(t, str)] if isinstance(operation.get("tags"), list) else []
        return Endpoint(
            id=endpoint_id,
            operation_id=operation_id,
            method=method.upper(),
            path=path,
            summary=operation.get("summary") if isinstance(operation.get("summary"), str) else None,
            description=operation.get("description") if isinstance(operation.get("description"), str) else None,
            tags=tags,
            parameters=parameters,
            request_body=request_body,
            responses=self._extract_responses(operation),
        )

    def _extract_parameters(
        self, path: str, path_item: Dict[str, Any], operation: Dict[str, Any]
    ) -> Tuple[List[Parameter], Optional[RequestBodyDefinition]]:
        """Merge path-level and operation-level parameters.

        An operation-level parameter replaces a path-level one with the same
        name and location. Swagger 2.0 ``body`` and ``formData`` parameters
        are returned as the request body instead of parameters.
        """
        merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for raw in list(path_item.get("parameters") or []) + list(operation.get("parameters") or []):
            param = self._resolve(raw)
            if not isinstance(param, dict) or not isinstance(param.get("name"), str):
                logger.warning(f"Skipping unresolvable parameter on {path}")
                continue
            merged[(param.get("in", "query"), param["name"])] = param

        parameters: List[Parameter] = []
        request_body: Optional[RequestBodyDefinition] = None
        form_fields: List[Dict[str, Any]] = []

        for (location, name), param in merged.items():
            if location == "body":
                request_body = self._swagger_body(param, operation)
                continue
            if location == "formData":
                form_fields.append(param)
                continue
            if location not in PARAMETER_LOCATIONS:
                logger.warning(f"Skipping parameter '{name}' with unknown location '{location}' on {path}")
                continue
            parameters.append(self._create_parameter(name, location, param))

        if form_fields:
            request_body = self._swagger_form_body(form_fields, operation)

        declared = {p.name for p in parameters if p.location == "path"}
        for placeholder in _PATH_PLACEHOLDER.findall(path):
            if placeholder not in declared:
                declared.add(placeholder)
                parameters.append(Parameter(name=placeholder, location="path", required=True,
                                            schema_=SimplifiedSchema(type="string")))
        return parameters, request_body

    def _create_parameter(self, name: str, location: str, param: Dict[str, Any]) -> Parameter:
        raw_schema = param.get("schema")
        if raw_schema is None:
            # Swagger 2.0 non-body parameters describe their type inline
            raw_schema = {
                key: param[key]
                for key in ("type", "format", "items", "enum", "default", "minimum", "maximum",
                            "minLength", "maxLength", "pattern")
                if key in param
            } or {"type": "string"}
        schema = self.normalizer.normalize(raw_schema)

        example = param.get("example")
        if example is None and isinstance(param.get("examples"), dict):
            first = next(iter(param["examples"].values()), None)
            first = self._resolve(first)
            if isinstance(first, dict):
                example = first.get("value")
        default = param.get("default", schema.default)

        return Parameter(
            name=name,
            location=location,
            required=bool(param.get("required", False)) or location == "path",
            description=param.get("description") if isinstance(param.get("description"), str) else None,
            schema_=schema,
            example=to_json_compatible(example),
            default=to_json_compatible(default),
        )

    def _extract_request_body(self, raw_body: Any) -> Optional[RequestBodyDefinition]:
        body = self._resolve(raw_body)
        if not isinstance(body, dict):
            return None
        content = {
            media_type: self.normalizer.normalize(media.get("schema") if isinstance(media, dict) else None)
            for media_type, media in (body.get("content") or {}).items()
        }
        return RequestBodyDefinition(
            required=bool(body.get("required", False)),
            description=body.get("description") if isinstance(body.get("description"), str) else None,
            content=content,
        )

    def _consumes(self, operation: Dict[str, Any]) -> List[str]:
        consumes = operation.get("consumes") or self.document.get("consumes") or []
        return [c for c in consumes if isinstance(c, str)]

    def _swagger_body(self, param: Dict[str, Any], operation: Dict[str, Any]) -> RequestBodyDefinition:
        media_types = self._consumes(operation) or ["application/json"]
        schema = self.normalizer.normalize(param.get("schema"))
        return RequestBodyDefinition(
            required=bool(param.get("required", False)),
            description=param.get("description") if isinstance(param.get("description"), str) else None,
            content={media_types[0]: schema},
        )

    def _swagger_form_body(self, fields: List[Dict[str, Any]], operation: Dict[str, Any]) -> RequestBodyDefinition:
        properties = {}
        required = []
        has_file = False
        for field in fields:
            if field.get("type") == "file":
                has_file = True
            properties[field["name"]] = self._create_parameter(field["name"], "query", field).schema_
            if field.get("required"):
                required.append(field["name"])
        consumes = self._consumes(operation)
        if has_file:
            media_type = "multipart/form-data"
        elif consumes and consumes[0] in ("multipart/form-data", "application/x-www-form-urlencoded"):
            media_type = consumes[0]
        else:
            media_type = "application/x-www-form-urlencoded"
        return RequestBodyDefinition(
            required=bool(required),
            content={media_type: SimplifiedSchema(type="object", properties=properties, required=required or None)},
        )

    def _extract_responses(self, operation: Dict[str, Any]) -> Dict[str, ResponseDefinition]:
        responses: Dict[str, ResponseDefinition] = {}
        raw_responses = operation.get("responses")
        if not isinstance(raw_responses, dict):
            return responses
        produces = operation.get("produces") or self.document.get("produces") or ["application/json"]
        for status, raw in raw_responses.items():
            response = self._resolve(raw)
            if not isinstance(response, dict):
                continue
            if "content" in response and isinstance(response["content"], dict):
                content = {
                    media_type: self.normalizer.normalize(media.get("schema") if isinstance(media, dict) else None)
                    for media_type, media in response["content"].items()
                }
            elif "schema" in response:
                content = {produces[0]: self.normalizer.normalize(response["schema"])}
            else:
                content = {}
            responses[str(status)] = ResponseDefinition(
                description=response.get("description") if isinstance(response.get("description"), str) else "",
                content=content,
            )
        return responses

    def _get_security_schemes(self) -> Dict[str, Any]:
        """Gets security schemes supporting both OpenAPI 2.0 and 3.x."""
        if self.is_swagger:
            schemes = self.document.get("securityDefinitions")
        else:
            schemes = (self.document.get("components") or {}).get("securitySchemes")
        return schemes if isinstance(schemes, dict) else {}

    def _extract_auth(self, api_id: str) -> AuthConfig:
        """Maps the first declared security scheme to an AuthConfig."""
        schemes = self._get_security_schemes()
        if not schemes:
            return NoAuth()
        scheme_name, scheme = next(iter(schemes.items()))
        scheme = self._resolve(scheme)
        if not isinstance(scheme, dict):
            return NoAuth()
        scheme_type = str(scheme.get("type", "")).lower()

        if scheme_type == "apikey":
            location = scheme.get("in", "header")
            if location not in ("header", "query", "cookie"):
                location = "header"
            return ApiKeyAuth(
                name=scheme_name,
                location=location,
                parameter_name=scheme.get("name") or "X-API-Key",
                secret=SecretReference.vault(f"{api_id}-apikey"),
            )

        if scheme_type == "basic":
            return self._basic_auth(api_id, scheme_name)

        if scheme_type == "http":
            http_scheme = str(scheme.get("scheme", "")).lower()
            if http_scheme == "bearer":
                return BearerAuth(name=scheme_name, secret=SecretReference.vault(f"{api_id}-token"))
            if http_scheme == "basic":
                return self._basic_auth(api_id, scheme_name)

        if scheme_type == "oauth2":
            return self._oauth2_auth(api_id, scheme_name, scheme)

        logger.warning(f"Security scheme '{scheme_name}' of type '{scheme_type}' is not supported, registering without auth")
        return NoAuth()

    @staticmethod
    def _basic_auth(api_id: str, scheme_name: str) -> BasicAuth:
        return BasicAuth(
            name=scheme_name,
            username=SecretReference.vault(f"{api_id}-username"),
            password=SecretReference.vault(f"{api_id}-password"),
        )

    def _oauth2_auth(self, api_id: str, scheme_name: str, scheme: Dict[str, Any]) -> OAuth2Auth:
        if self.is_swagger:
            swagger_flows = {"application": "client_credentials", "accessCode": "authorization_code"}
            flow = swagger_flows.get(scheme.get("flow"))
            config = scheme
        else:
            flows = scheme.get("flows") if isinstance(scheme.get("flows"), dict) else {}
            flow, config = None, None
            for name, canonical in (("clientCredentials", "client_credentials"), ("authorizationCode", "authorization_code")):
                if isinstance(flows.get(name), dict):
                    flow, config = canonical, flows[name]
                    break
        if flow is None or config is None:
            raise SpecParseError("No supported OAuth2 flow found")

        token_url = config.get("tokenUrl")
        if not token_url:
            raise SpecParseError(f"OAuth2 scheme '{scheme_name}' has no token URL")
        if self.spec_url and not urlparse(token_url).scheme:
            token_url = urljoin(self.spec_url, token_url)

        scopes = config.get("scopes") if isinstance(config.get("scopes"), dict) else {}
        return OAuth2Auth(
            name=scheme_name,
            flow=flow,
            token_url=token_url,
            authorization_url=config.get("authorizationUrl"),
            client_id=SecretReference.vault(f"{api_id}-clientid"),
            client_secret=SecretReference.vault(f"{api_id}-clientsecret"),
            scopes=list(scopes.keys()),
        )


class OpenApiIngestor:
    """REQUIRED
    Ingests OpenAPI and Swagger documents from URLs or streams.

    Attributes:
        max_depth: Schema normalization depth limit.
        timeout: Download timeout in seconds.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH, timeout: Optional[float] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.max_depth = max_depth
        self.timeout = timeout
        self._session = session

    async def parse_url(self, spec_url: str, base_url: Optional[str] = None) -> Registration:
        """Download and convert the document at ``spec_url``.

        Raises:
            aiohttp.ClientError: If the download fails.
            SpecParseError: If the document cannot be ingested.
        """
        logger.info(f"Fetching OpenAPI document from {spec_url}")
        text, _ = await fetch_text(spec_url, timeout=self.timeout, session=self._session)
        return self.parse_stream(text, base_url=base_url, spec_url=spec_url)

    def parse_stream(self, stream: DocumentSource, base_url: Optional[str] = None,
                     spec_url: Optional[str] = None) -> Registration:
        """Convert a document given as text, bytes or a readable stream."""
        document = read_document(stream)
        return OpenApiConverter(document, spec_url=spec_url, base_url=base_url, max_depth=self.max_depth).convert()
