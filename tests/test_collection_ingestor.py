import json

import pytest

from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.exceptions import InvocationValidationError, SpecParseError
from anyapi.ingestion.collection_ingestor import (
    CollectionIngestor,
    infer_schema,
    infer_schema_from_text,
    is_postman_collection,
)
from anyapi.invocation.request_synthesizer import synthesize_request

SCHEMA_URL = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"


def _collection(items, **extra):
    collection = {
        "info": {"_postman_id": "abc", "name": "Shop API", "schema": SCHEMA_URL},
        "item": items,
    }
    collection.update(extra)
    return json.dumps(collection)


def _parse(text, source_url=None):
    return CollectionIngestor().parse_from_json(text, source_url=source_url)


def test_path_variable_becomes_required_parameter():
    text = _collection([{
        "name": "Get user",
        "request": {
            "method": "GET",
            "url": {
                "raw": "https://api.shop.com/users/:id",
                "protocol": "https",
                "host": ["api", "shop", "com"],
                "path": ["users", ":id"],
                "variable": [{"key": "id", "value": "42", "description": "User id"}],
            },
        },
    }])

    registration = _parse(text)

    assert registration.spec_format == "postman-2.1"
    assert registration.base_url == "https://api.shop.com"
    endpoint = registration.endpoints[0]
    assert endpoint.path == "/users/{id}"
    assert endpoint.operation_id == "get-get-user"
    assert endpoint.tags == ["default"]
    param = endpoint.parameters[0]
    assert (param.name, param.location, param.required) == ("id", "path", True)
    assert param.example == "42"
    assert param.description == "User id"


def test_folders_tag_endpoints_with_top_level_folder():
    text = _collection([{
        "name": "Orders",
        "item": [
            {"name": "Drafts", "item": [
                {"name": "List drafts", "request": {"method": "GET", "url": "https://api.shop.com/orders/drafts"}},
            ]},
            {"name": "Create order", "request": {"method": "POST", "url": "https://api.shop.com/orders"}},
        ],
    }])

    endpoints = _parse(text).endpoints

    assert [(e.operation_id, e.tags) for e in endpoints] == [
        ("get-list-drafts", ["Orders"]),
        ("post-create-order", ["Orders"]),
    ]
    assert endpoints[0].path == "/orders/drafts"


def test_duplicate_names_get_suffixes():
    request = {"method": "GET", "url": "https://api.shop.com/ping"}
    endpoints = _parse(_collection([{"name": "Ping", "request": request}, {"name": "Ping", "request": request}])).endpoints
    assert [e.operation_id for e in endpoints] == ["get-ping", "get-ping-2"]


def test_variables_resolve_or_become_placeholders():
    text = _collection([{
        "name": "Get item",
        "request": {"method": "GET", "url": "{{baseUrl}}/stores/{{storeId}}/items/{{itemId}}"},
    }], variable=[
        {"key": "baseUrl", "value": "https://api.shop.com/v2"},
        {"key": "storeId", "value": "main"},
    ])

    registration = _parse(text)

    assert registration.base_url == "https://api.shop.com/v2"
    endpoint = registration.endpoints[0]
    assert endpoint.path == "/stores/main/items/{itemId}"
    assert [p.name for p in endpoint.parameters] == ["itemId"]


@pytest.mark.parametrize("url", [
    {"raw": "https://api.shop.com/users/:user-id/orders/{{order.id}}",
     "host": ["api", "shop", "com"], "path": ["users", ":user-id", "orders", "{{order.id}}"]},
    "https://api.shop.com/users/:user-id/orders/{{order.id}}",
])
def test_hyphenated_and_dotted_path_variables(url):
    registration = _parse(_collection([{"name": "Get order", "request": {"method": "GET", "url": url}}]))
    endpoint = registration.endpoints[0]

    assert endpoint.path == "/users/{user-id}/orders/{order.id}"
    assert [(p.name, p.location, p.required) for p in endpoint.parameters] == [
        ("user-id", "path", True),
        ("order.id", "path", True),
    ]

    with pytest.raises(InvocationValidationError) as exc_info:
        synthesize_request(registration.base_url, endpoint, {})
    assert exc_info.value.missing == ["user-id (path)", "order.id (path)"]

    request = synthesize_request(registration.base_url, endpoint, {"user-id": "u 1", "order.id": 7})
    assert request.url == "https://api.shop.com/users/u%201/orders/7"


def test_default_base_url_when_nothing_resolves():
    text = _collection([{"name": "x", "request": {"method": "GET", "url": "{{host}}/x"}}])
    assert _parse(text).base_url == "https://api.example.com"


def test_query_and_header_parameters():
    text = _collection([{
        "name": "Search",
        "request": {
            "method": "GET",
            "header": [
                {"key": "Accept", "value": "application/json"},
                {"key": "X-Request-Id", "value": "1"},
                {"key": "X-Disabled", "value": "1", "disabled": True},
            ],
            "url": {
                "raw": "https://api.shop.com/search?q=shoes&page=1",
                "host": ["api", "shop", "com"],
                "path": ["search"],
                "query": [{"key": "q", "value": "shoes"}, {"key": "page", "value": "1", "disabled": True}],
            },
        },
    }])

    params = _parse(text).endpoints[0].parameters

    assert [(p.name, p.location, p.required) for p in params] == [
        ("q", "query", False),
        ("X-Request-Id", "header", False),
    ]


def test_bodies():
    text = _collection([
        {"name": "Create", "request": {
            "method": "POST", "url": "https://api.shop.com/items",
            "body": {"mode": "raw", "raw": json.dumps({"name": "x", "price": 9.5, "qty": 2, "tags": ["a"]})},
        }},
        {"name": "Upload", "request": {
            "method": "POST", "url": "https://api.shop.com/files",
            "body": {"mode": "formdata", "formdata": [
                {"key": "file", "type": "file", "src": "/tmp/a.png"},
                {"key": "label", "value": "x", "type": "text"},
            ]},
        }},
        {"name": "Login", "request": {
            "method": "POST", "url": "https://api.shop.com/login",
            "body": {"mode": "urlencoded", "urlencoded": [{"key": "user", "value": "u"}]},
        }},
    ])

    create, upload, login = _parse(text).endpoints

    body = create.request_body.content["application/json"]
    assert create.request_body.required is True
    assert body.properties["price"].type == "number"
    assert body.properties["qty"].type == "integer"
    assert body.properties["tags"].items.type == "string"
    form = upload.request_body.content["multipart/form-data"]
    assert form.properties["file"].format == "binary"
    assert form.properties["label"].type == "string"
    assert "application/x-www-form-urlencoded" in login.request_body.content


@pytest.mark.parametrize("auth, expected_type", [
    ({"type": "bearer", "bearer": [{"key": "token", "value": "{{token}}"}]}, BearerAuth),
    ({"type": "basic", "basic": [{"key": "username", "value": "u"}]}, BasicAuth),
    ({"type": "noauth"}, NoAuth),
    ({"type": "hawk", "hawk": []}, NoAuth),
    ({"type": "oauth2", "oauth2": [{"key": "grant_type", "value": "client_credentials"}]}, NoAuth),
])
def test_auth_mapping(auth, expected_type):
    request = {"method": "GET", "url": "https://api.shop.com/x"}
    registration = _parse(_collection([{"name": "x", "request": request}], auth=auth))
    assert isinstance(registration.auth, expected_type)


def test_api_key_and_oauth2_details():
    request = {"method": "GET", "url": "https://api.shop.com/x"}
    registration = _parse(_collection([{"name": "x", "request": request}], auth={
        "type": "apikey",
        "apikey": [{"key": "key", "value": "X-Shop-Key"}, {"key": "in", "value": "query"}],
    }))
    assert isinstance(registration.auth, ApiKeyAuth)
    assert registration.auth.parameter_name == "X-Shop-Key"
    assert registration.auth.location == "query"
    assert registration.auth.secret.secret_name == f"{registration.id}-apikey"

    registration = _parse(_collection([{"name": "x", "request": request}], auth={
        "type": "oauth2",
        "oauth2": {"accessTokenUrl": "https://auth.shop.com/token", "scope": "read write"},
    }))
    assert isinstance(registration.auth, OAuth2Auth)
    assert registration.auth.token_url == "https://auth.shop.com/token"
    assert registration.auth.scopes == ["read", "write"]


def test_registration_id_uses_source_url():
    request = {"method": "GET", "url": "https://api.shop.com/x"}
    text = _collection([{"name": "x", "request": request}])
    assert _parse(text, "https://a.example.com/c.json").id != _parse(text, "https://b.example.com/c.json").id
    assert _parse(text).id.startswith("shop-api-")


def test_is_postman_collection():
    assert is_postman_collection(_collection([]))
    assert is_postman_collection(json.dumps({"item": [{"name": "x", "request": "https://a.com"}]}))
    assert not is_postman_collection(json.dumps({"openapi": "3.0.0"}))
    assert not is_postman_collection("type Query { a: Int }")


def test_invalid_collection_json():
    with pytest.raises(SpecParseError):
        _parse("{not json")
    with pytest.raises(SpecParseError):
        _parse("[1, 2]")


def test_infer_schema():
    assert infer_schema(True).type == "boolean"
    assert infer_schema(1.0).type == "number"
    assert infer_schema([]).items.type == "object"
    assert infer_schema_from_text("not json").type == "object"
