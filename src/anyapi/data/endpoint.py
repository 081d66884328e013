"""Canonical endpoint model shared by every ingestor.

An ``Endpoint`` is one invocable operation of a registered API: an HTTP
method and path template plus the parameters, body and responses needed to
synthesize a request for it.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from anyapi.data.schema import JsonType, SimplifiedSchema
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.ingestion.identifiers import to_slug
from anyapi.interfaces.serializer import Serializer

ParameterLocation = Literal["path", "query", "header", "cookie", "body"]


class Parameter(BaseModel):
    """REQUIRED
    A single named input of an endpoint.

    Attributes:
        name: Parameter name as it appears on the wire.
        location: Where the value is placed (path, query, header, cookie, body).
        required: Whether the caller must supply it. Always True for path parameters.
        description: Optional human description.
        schema_: Simplified schema of the value (serialized as ``schema``).
        example: Optional example value.
        default: Optional default value.
    """
    name: str
    location: ParameterLocation = Field("query", alias="in")
    required: bool = False
    description: Optional[str] = None
    schema_: SimplifiedSchema = Field(default_factory=lambda: SimplifiedSchema(type="string"), alias="schema")
    example: Optional[JsonType] = None
    default: Optional[JsonType] = None

    model_config = {
        "validate_by_name": True,
        "validate_by_alias": True,
        "serialize_by_alias": True,
    }

    @model_validator(mode="after")
    def _path_parameters_are_required(self) -> "Parameter":
        if self.location == "path" and not self.required:
            self.required = True
        return self

    def display_name(self) -> str:
        return f"{self.name} ({self.location})"


class RequestBodyDefinition(BaseModel):
    """REQUIRED
    Request body accepted by an endpoint.

    Attributes:
        required: Whether an invocation must carry a body.
        description: Optional description.
        content: Media type to schema, e.g. ``{"application/json": {...}}``.
    """
    required: bool = False
    description: Optional[str] = None
    content: Dict[str, SimplifiedSchema] = Field(default_factory=dict)


class ResponseDefinition(BaseModel):
    """REQUIRED
    One documented response of an endpoint.

    Attributes:
        description: Response description, or the formatted return type for GraphQL fields.
        content: Media type to schema.
    """
    description: str = ""
    content: Dict[str, SimplifiedSchema] = Field(default_factory=dict)


class Endpoint(BaseModel):
    """REQUIRED
    One invocable operation of a registered API.

    Attributes:
        id: Identifier unique within the registration.
        operation_id: Operation identifier unique within the registration.
        method: Upper-case HTTP method.
        path: Path template with ``{name}`` placeholders.
        summary: Optional short summary.
        description: Optional long description.
        tags: Grouping tags, first one is used in tool names.
        parameters: Ordered parameter list.
        request_body: Optional request body definition.
        responses: Status code to response definition.
        is_enabled: Whether the endpoint may be invoked.
    """
    id: str
    operation_id: str
    method: str
    path: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    parameters: List[Parameter] = Field(default_factory=list)
    request_body: Optional[RequestBodyDefinition] = None
    responses: Dict[str, ResponseDefinition] = Field(default_factory=dict)
    is_enabled: bool = True

    def get_tool_name(self, api_id: str) -> str:
        """Return the fully-qualified tool name ``{api_id}.{tag}.{operation}``."""
        tag = to_slug(self.tags[0]) if self.tags else "api"
        operation = self.operation_id.lower().replace("_", "-")
        return f"{api_id}.{tag}.{operation}"

    def parameters_in(self, location: str) -> List[Parameter]:
        return [p for p in self.parameters if p.location == location]


class EndpointSerializer(Serializer[Endpoint]):
    """REQUIRED
    Serializer for Endpoint model."""
    def to_dict(self, obj: Endpoint) -> dict:
        return obj.model_dump(by_alias=True, exclude_none=True)

    def validate_dict(self, obj: dict) -> Endpoint:
        try:
            return Endpoint.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid Endpoint: {e}") from e
