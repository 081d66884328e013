"""GraphQL ingestion from live introspection or SDL text.

Every field of the query and mutation root types becomes one endpoint that
is invoked with a POST to the GraphQL URL. Field arguments become ``body``
parameters. SDL text is parsed with graphql-core's parser and converted into
the same type-reference shape the introspection query returns, so both modes
share one conversion path.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from gql import Client as GqlClient, gql as gql_query
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import TransportProtocolError, TransportQueryError
from graphql import (
    GraphQLError,
    ListTypeNode,
    NonNullTypeNode,
    ObjectTypeDefinitionNode,
    ObjectTypeExtensionNode,
    OperationType,
    SchemaDefinitionNode,
    SchemaExtensionNode,
    get_introspection_query,
    parse,
    parse_value,
    print_ast,
    value_from_ast_untyped,
)

from anyapi.data.auth_implementations import NoAuth
from anyapi.data.endpoint import Endpoint, Parameter, ResponseDefinition
from anyapi.data.registration import Registration
from anyapi.data.schema import SimplifiedSchema
from anyapi.exceptions import SpecParseError
from anyapi.ingestion.identifiers import UniqueIdAllocator, generate_registration_id

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d - %(message)s",
)

logger = logging.getLogger(__name__)

SCALAR_TYPES = {
    "ID": "string",
    "String": "string",
    "Int": "integer",
    "Float": "number",
    "Boolean": "boolean",
}

SDL_MARKERS = ("type Query", "type Mutation", "schema {", "directive @")

GRAPHQL_PATH = "/graphql"

TypeRef = Dict[str, Any]


def is_graphql_schema(text: str) -> bool:
    """Whether ``text`` looks like GraphQL SDL rather than JSON or YAML."""
    if not text:
        return False
    stripped = text.lstrip()
    if stripped.startswith("{") or stripped.startswith("["):
        return False
    return any(marker in text for marker in SDL_MARKERS)


def looks_like_graphql_endpoint(url: str) -> bool:
    path = urlparse(url).path.lower().rstrip("/")
    return "/graphql" in path or path.endswith("/gql")


def graphql_base_url(endpoint_url: str) -> str:
    """Base URL that the ``/graphql#...`` endpoint paths resolve against.

    ``https://api.example.com/v1/graphql`` gives ``https://api.example.com/v1``.
    Endpoints served elsewhere (``/gql``) keep their full URL.
    """
    trimmed = endpoint_url.rstrip("/")
    if trimmed.endswith(GRAPHQL_PATH) and urlparse(trimmed).path.endswith(GRAPHQL_PATH):
        return trimmed[:-len(GRAPHQL_PATH)]
    return trimmed


def display_name_from_url(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    labels = [label for label in host.split(".") if label]
    if len(labels) > 2 and labels[0] in ("api", "graphql", "gql"):
        labels = labels[1:]
    if not labels:
        return "GraphQL API"
    if len(labels) == 1:
        return f"{labels[0]} GraphQL API"
    return f"{labels[0].capitalize()} GraphQL API"


def format_type_ref(type_ref: Optional[TypeRef]) -> str:
    """Render a type reference in SDL notation, e.g. ``[User!]!``."""
    if not type_ref:
        return "Unknown"
    kind = type_ref.get("kind")
    if kind == "NON_NULL":
        return f"{format_type_ref(type_ref.get('ofType'))}!"
    if kind == "LIST":
        return f"[{format_type_ref(type_ref.get('ofType'))}]"
    return type_ref.get("name") or "Unknown"


def unwrap_type_ref(type_ref: Optional[TypeRef]) -> Tuple[Optional[str], bool]:
    """Return the leaf type name and whether any list wrapper was present."""
    is_list = False
    node = type_ref
    while node and node.get("kind") in ("NON_NULL", "LIST"):
        if node.get("kind") == "LIST":
            is_list = True
        node = node.get("ofType")
    return (node or {}).get("name"), is_list


def schema_for_type_ref(type_ref: Optional[TypeRef]) -> SimplifiedSchema:
    leaf_name, is_list = unwrap_type_ref(type_ref)
    scalar = SCALAR_TYPES.get(leaf_name or "")
    leaf = SimplifiedSchema(type=scalar) if scalar else SimplifiedSchema(type="object", description=leaf_name)
    if is_list:
        return SimplifiedSchema(type="array", items=leaf)
    return leaf


def _literal_default(default_value: Optional[str]) -> Any:
    if default_value is None:
        return None
    try:
        return value_from_ast_untyped(parse_value(default_value))
    except GraphQLError:
        return default_value


def _type_node_to_ref(node: Any) -> TypeRef:
    if isinstance(node, NonNullTypeNode):
        return {"kind": "NON_NULL", "name": None, "ofType": _type_node_to_ref(node.type)}
    if isinstance(node, ListTypeNode):
        return {"kind": "LIST", "name": None, "ofType": _type_node_to_ref(node.type)}
    name = node.name.value
    kind = "SCALAR" if name in SCALAR_TYPES else "OBJECT"
    return {"kind": kind, "name": name, "ofType": None}


class GraphQLIngestor:
    """REQUIRED
    Produces Registrations from GraphQL endpoints or SDL documents.

    Attributes:
        timeout: Introspection timeout in seconds.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def parse_from_endpoint(self, url: str, headers: Optional[Dict[str, str]] = None,
                                  timeout: Optional[float] = None) -> Registration:
        """Introspect a live GraphQL endpoint.

        ``timeout`` overrides the ingestor's introspection timeout for this call.

        Raises:
            SpecParseError: If the response carries errors or lacks ``__schema``.
            aiohttp.ClientError: On network failures.
        """
        schema = await self.introspect(url, headers, timeout)
        query_type = (schema.get("queryType") or {}).get("name")
        mutation_type = (schema.get("mutationType") or {}).get("name")
        fields_by_type = {
            t["name"]: t.get("fields") or []
            for t in schema.get("types") or []
            if isinstance(t, dict) and t.get("name")
        }
        registration = self._build_registration(
            name=display_name_from_url(url),
            base_url=url,
            spec_url=url,
            spec_format="graphql",
            description="GraphQL API",
            queries=fields_by_type.get(query_type, []) if query_type else [],
            mutations=fields_by_type.get(mutation_type, []) if mutation_type else [],
        )
        logger.info(f"Introspected {url}: {len(registration.endpoints)} operations")
        return registration

    async def introspect(self, url: str, headers: Optional[Dict[str, str]] = None,
                         timeout: Optional[float] = None) -> Dict[str, Any]:
        """Run the standard introspection query and return ``data.__schema``."""
        transport = AIOHTTPTransport(url=url, headers=headers or {})
        client = GqlClient(
            transport=transport,
            fetch_schema_from_transport=False,
            execute_timeout=timeout if timeout is not None else self.timeout,
        )
        try:
            async with client as session:
                result = await session.execute(gql_query(get_introspection_query(descriptions=True)))
        except TransportQueryError as e:
            messages = [str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in (e.errors or [])]
            raise SpecParseError("GraphQL introspection returned errors", messages or [str(e)]) from e
        except TransportProtocolError as e:
            raise SpecParseError(f"Could not decode introspection response from {url}: {e}") from e

        schema = result.get("__schema") if isinstance(result, dict) else None
        if not isinstance(schema, dict):
            raise SpecParseError(f"Introspection response from {url} contains no schema")
        return schema

    def parse_from_sdl(self, sdl: str, base_url: str, name: Optional[str] = None) -> Registration:
        """Convert SDL text into a Registration invoked at ``base_url``.

        Raises:
            SpecParseError: If the text is not valid GraphQL.
        """
        try:
            document = parse(sdl)
        except GraphQLError as e:
            raise SpecParseError(f"Invalid GraphQL SDL: {e.message}") from e

        root_names = {OperationType.QUERY: "Query", OperationType.MUTATION: "Mutation"}
        fields_by_type: Dict[str, List[Dict[str, Any]]] = {}

        for definition in document.definitions:
            if isinstance(definition, (SchemaDefinitionNode, SchemaExtensionNode)):
                for operation_type in definition.operation_types or ():
                    root_names[operation_type.operation] = operation_type.type.name.value
            elif isinstance(definition, (ObjectTypeDefinitionNode, ObjectTypeExtensionNode)):
                fields = fields_by_type.setdefault(definition.name.value, [])
                fields.extend(self._sdl_field(field) for field in definition.fields or ())

        registration = self._build_registration(
            name=name or "GraphQL API",
            base_url=base_url,
            spec_url=None,
            spec_format="graphql-sdl",
            description="GraphQL API (from SDL)",
            queries=fields_by_type.get(root_names[OperationType.QUERY], []),
            mutations=fields_by_type.get(root_names[OperationType.MUTATION], []),
        )
        logger.info(f"Parsed GraphQL SDL for {base_url}: {len(registration.endpoints)} operations")
        return registration

    @staticmethod
    def _sdl_field(field: Any) -> Dict[str, Any]:
        return {
            "name": field.name.value,
            "description": field.description.value if field.description else None,
            "type": _type_node_to_ref(field.type),
            "args": [
                {
                    "name": arg.name.value,
                    "description": arg.description.value if arg.description else None,
                    "type": _type_node_to_ref(arg.type),
                    "defaultValue": print_ast(arg.default_value) if arg.default_value else None,
                }
                for arg in field.arguments or ()
            ],
        }

    def _build_registration(
        self,
        name: str,
        base_url: str,
        spec_url: Optional[str],
        spec_format: str,
        description: str,
        queries: List[Dict[str, Any]],
        mutations: List[Dict[str, Any]],
    ) -> Registration:
        ids = UniqueIdAllocator()
        endpoints: List[Endpoint] = []
        for operation, tag, fields in (("query", "Query", queries), ("mutation", "Mutation", mutations)):
            for field in fields:
                field_name = field.get("name") or ""
                if not field_name or field_name.startswith("__"):
                    continue
                endpoints.append(self._create_endpoint(ids, operation, tag, field))

        return Registration(
            id=generate_registration_id(name, base_url),
            display_name=name,
            base_url=graphql_base_url(base_url),
            spec_url=spec_url,
            spec_format=spec_format,
            description=description,
            auth=NoAuth(),
            endpoints=endpoints,
        )

    @staticmethod
    def _create_endpoint(ids: UniqueIdAllocator, operation: str, tag: str, field: Dict[str, Any]) -> Endpoint:
        field_name = field["name"]
        endpoint_id = ids.allocate(f"{operation}-{field_name}")
        parameters = []
        for arg in field.get("args") or []:
            arg_type = arg.get("type") or {}
            parameters.append(Parameter(
                name=arg["name"],
                location="body",
                required=arg_type.get("kind") == "NON_NULL",
                description=arg.get("description"),
                schema_=schema_for_type_ref(arg_type),
                default=_literal_default(arg.get("defaultValue")),
            ))
        return Endpoint(
            id=endpoint_id,
            operation_id=endpoint_id,
            method="POST",
            path=f"{GRAPHQL_PATH}#{operation}.{field_name}",
            summary=field.get("description"),
            description=field.get("description"),
            tags=[tag],
            parameters=parameters,
            responses={"200": ResponseDefinition(description=format_type_ref(field.get("type")))},
        )
