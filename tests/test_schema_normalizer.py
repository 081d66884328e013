import datetime

import pytest

from anyapi.data.schema import SimplifiedSchema
from anyapi.ingestion.schema_normalizer import (
    SchemaNormalizer,
    normalize_schema,
    resolve_pointer,
    to_json_compatible,
)


@pytest.fixture
def cyclic_document():
    return {
        "components": {
            "schemas": {
                "Node": {
                    "type": "object",
                    "properties": {
                        "value": {"type": "integer"},
                        "next": {"$ref": "#/components/schemas/Node"},
                        "children": {"type": "array", "items": {"$ref": "#/components/schemas/Node"}},
                    },
                },
                "Pair": {
                    "type": "object",
                    "properties": {
                        "left": {"$ref": "#/components/schemas/Leaf"},
                        "right": {"$ref": "#/components/schemas/Leaf"},
                    },
                },
                "Leaf": {"type": "string", "description": "leaf"},
            }
        }
    }


def test_self_reference_becomes_placeholder(cyclic_document):
    schema = normalize_schema({"$ref": "#/components/schemas/Node"}, cyclic_document)

    assert schema.type == "object"
    assert schema.properties["value"].type == "integer"
    nested = schema.properties["next"]
    assert nested.is_placeholder()
    assert nested.description == "(circular ref to #/components/schemas/Node)"
    assert schema.properties["children"].type == "array"
    assert schema.properties["children"].items.is_placeholder()


def test_sibling_references_are_both_expanded(cyclic_document):
    schema = normalize_schema({"$ref": "#/components/schemas/Pair"}, cyclic_document)

    assert schema.properties["left"].type == "string"
    assert schema.properties["right"].type == "string"
    assert not schema.properties["right"].is_placeholder()


def test_depth_limit_cuts_deep_nesting():
    deep = {"type": "string"}
    for _ in range(30):
        deep = {"type": "object", "properties": {"child": deep}}

    schema = normalize_schema(deep, max_depth=3)

    node = schema
    for _ in range(3):
        node = node.properties["child"]
    assert node.properties["child"].description == "(max depth reached)"
    assert node.properties["child"].is_placeholder()


def test_unresolved_reference():
    schema = normalize_schema({"$ref": "#/components/schemas/Missing"}, {})
    assert schema.description == "(unresolved ref #/components/schemas/Missing)"


def test_normalizer_state_is_per_call(cyclic_document):
    normalizer = SchemaNormalizer(cyclic_document)
    first = normalizer.normalize({"$ref": "#/components/schemas/Node"})
    second = normalizer.normalize({"$ref": "#/components/schemas/Node"})
    assert first == second
    assert not first.is_placeholder()


def test_all_of_merges_properties_and_required():
    document = {
        "components": {
            "schemas": {
                "Base": {"type": "object", "properties": {"id": {"type": "string"}}, "required": ["id"]},
            }
        }
    }
    schema = normalize_schema({
        "allOf": [
            {"$ref": "#/components/schemas/Base"},
            {"type": "object", "properties": {"name": {"type": "string"}}, "required": ["name"]},
        ]
    }, document)

    assert set(schema.properties) == {"id", "name"}
    assert schema.required == ["id", "name"]


def test_one_of_takes_first_variant():
    schema = normalize_schema({"oneOf": [{"type": "integer"}, {"type": "string"}], "description": "either"})
    assert schema.type == "integer"
    assert schema.description == "either"


@pytest.mark.parametrize("raw, expected_type, expected_format", [
    ({"type": ["null", "integer"]}, "integer", None),
    ({"type": "file"}, "string", "binary"),
    ({"type": "uuid"}, "string", None),
    ({"items": {"type": "string"}}, "array", None),
    ({}, "object", None),
    ({"type": "string", "format": "date-time"}, "string", "date-time"),
])
def test_type_mapping(raw, expected_type, expected_format):
    schema = normalize_schema(raw)
    assert schema.type == expected_type
    assert schema.format == expected_format


def test_constraints_keep_json_types():
    schema = normalize_schema({
        "type": "integer",
        "minimum": 1,
        "maximum": 10.5,
        "enum": [1, 2, None, 3],
        "default": 2,
        "example": datetime.date(2024, 1, 31),
    })
    assert schema.minimum == 1
    assert schema.maximum == 10.5
    assert schema.enum == [1, 2, 3]
    assert schema.default == 2
    assert schema.example == "2024-01-31"


def test_ref_sibling_description_applies():
    document = {"definitions": {"Id": {"type": "string"}}}
    schema = normalize_schema({"$ref": "#/definitions/Id", "description": "the id"}, document)
    assert schema == SimplifiedSchema(type="string", description="the id")


def test_resolve_pointer_escapes():
    document = {"paths": {"/users/{id}": {"get": {"ok": True}}}, "a~b": 1}
    assert resolve_pointer(document, "#/paths/~1users~1{id}/get") == {"ok": True}
    assert resolve_pointer(document, "#/a~0b") == 1
    assert resolve_pointer(document, "other.yaml#/x") is None


def test_to_json_compatible_converts_nested_dates():
    value = {"when": datetime.datetime(2024, 5, 1, 12, 0), "list": [datetime.date(2024, 1, 1)]}
    assert to_json_compatible(value) == {"when": "2024-05-01T12:00:00", "list": ["2024-01-01"]}
