"""Simplified JSON schema used across the canonical model.

Every schema an ingestor produces is reduced to this shape: a single type,
a handful of constraints and nested ``items``/``properties``. References are
already resolved and cycles already cut by the schema normalizer, so a
``SimplifiedSchema`` tree is always finite.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ValidationError

from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer

JsonType = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]

SchemaType = Literal["string", "number", "integer", "boolean", "array", "object"]


class SimplifiedSchema(BaseModel):
    """REQUIRED
    Reduced JSON schema attached to parameters, bodies and responses.

    Attributes:
        type: One of string, number, integer, boolean, array or object.
        format: Optional format hint (date-time, int64, binary, ...).
        description: Optional description. Also carries the placeholder text
            for depth-limited and circular nodes.
        pattern: Optional regular expression constraint.
        minLength: Optional minimum string length.
        maxLength: Optional maximum string length.
        minimum: Optional numeric lower bound.
        maximum: Optional numeric upper bound.
        enum: Optional list of allowed values, kept with their JSON types.
        items: Element schema when type is array.
        properties: Member schemas when type is object.
        required: Names of required properties.
        default: Optional default value.
        example: Optional example value.
    """
    type: SchemaType = "object"
    format: Optional[str] = None
    description: Optional[str] = None
    pattern: Optional[str] = None
    minLength: Optional[int] = None
    maxLength: Optional[int] = None
    minimum: Optional[Union[int, float]] = None
    maximum: Optional[Union[int, float]] = None
    enum: Optional[List[JsonType]] = None
    items: Optional["SimplifiedSchema"] = None
    properties: Optional[Dict[str, "SimplifiedSchema"]] = None
    required: Optional[List[str]] = None
    default: Optional[JsonType] = None
    example: Optional[JsonType] = None

    def is_placeholder(self) -> bool:
        """Whether this node stands in for a subtree cut by depth or cycle limits."""
        if self.type != "object" or self.properties is not None or self.description is None:
            return False
        return self.description == "(max depth reached)" or self.description.startswith(
            ("(circular ref to ", "(unresolved ref ")
        )


SimplifiedSchema.model_rebuild()


class SimplifiedSchemaSerializer(Serializer[SimplifiedSchema]):
    """REQUIRED
    Serializer for SimplifiedSchema."""
    def to_dict(self, obj: SimplifiedSchema) -> dict:
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> SimplifiedSchema:
        try:
            return SimplifiedSchema.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid SimplifiedSchema: {e}") from e
