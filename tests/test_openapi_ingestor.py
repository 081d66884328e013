import io
import json

import pytest
import pytest_asyncio
from aiohttp import web

from anyapi.data.auth_implementations import ApiKeyAuth, BasicAuth, BearerAuth, NoAuth, OAuth2Auth
from anyapi.exceptions import SpecParseError
from anyapi.ingestion.openapi_ingestor import OpenApiConverter, OpenApiIngestor, read_document


def _openapi(paths, **extra):
    document = {
        "openapi": "3.0.3",
        "info": {"title": "Users API", "version": "1.2.0", "description": "Manages users"},
        "servers": [{"url": "https://api.example.com/v1"}],
        "paths": paths,
    }
    document.update(extra)
    return document


def test_single_get_with_path_parameter():
    document = _openapi({
        "/users/{id}": {
            "get": {
                "operationId": "getUser",
                "tags": ["users"],
                "summary": "Get a user",
                "parameters": [{"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}],
                "responses": {"200": {"description": "OK"}},
            }
        }
    })

    registration = OpenApiConverter(document).convert()

    assert registration.display_name == "Users API"
    assert registration.api_version == "1.2.0"
    assert registration.base_url == "https://api.example.com/v1"
    assert registration.spec_format == "openapi-3.0"
    assert isinstance(registration.auth, NoAuth)
    assert len(registration.endpoints) == 1
    endpoint = registration.endpoints[0]
    assert endpoint.operation_id == "getUser"
    assert endpoint.id == "getuser"
    assert endpoint.method == "GET"
    assert endpoint.path == "/users/{id}"
    assert endpoint.tags == ["users"]
    assert len(endpoint.parameters) == 1
    param = endpoint.parameters[0]
    assert (param.name, param.location, param.required, param.schema_.type) == ("id", "path", True, "string")
    assert endpoint.responses["200"].description == "OK"


def test_generated_and_deduplicated_operation_ids():
    document = _openapi({
        "/users/{id}/posts": {"get": {"responses": {}}},
        "/a": {"get": {"operationId": "dup", "responses": {}}},
        "/b": {"get": {"operationId": "dup", "responses": {}}},
    })

    endpoints = OpenApiConverter(document).convert().endpoints

    assert [e.operation_id for e in endpoints] == ["get_users_id_posts", "dup", "dup-2"]
    assert endpoints[0].id == "get-users-id-posts"


def test_operation_parameters_override_path_level_ones():
    document = _openapi({
        "/items": {
            "parameters": [
                {"name": "limit", "in": "query", "description": "path level", "schema": {"type": "string"}},
                {"$ref": "#/components/parameters/Trace"},
            ],
            "get": {
                "parameters": [{"name": "limit", "in": "query", "required": True, "schema": {"type": "integer"}}],
                "responses": {},
            },
        }
    }, components={"parameters": {"Trace": {"name": "X-Trace", "in": "header", "schema": {"type": "string"}}}})

    params = {p.name: p for p in OpenApiConverter(document).convert().endpoints[0].parameters}

    assert params["limit"].required is True
    assert params["limit"].schema_.type == "integer"
    assert params["limit"].description is None
    assert params["X-Trace"].location == "header"


def test_undeclared_path_placeholder_becomes_required_parameter():
    document = _openapi({"/orgs/{org}/repos": {"get": {"responses": {}}}})
    param = OpenApiConverter(document).convert().endpoints[0].parameters[0]
    assert (param.name, param.location, param.required) == ("org", "path", True)


def test_request_body_and_response_schemas_are_normalized():
    document = _openapi({
        "/users": {
            "post": {
                "operationId": "createUser",
                "requestBody": {"$ref": "#/components/requestBodies/NewUser"},
                "responses": {
                    "201": {
                        "description": "Created",
                        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
                    }
                },
            }
        }
    }, components={
        "requestBodies": {
            "NewUser": {
                "required": True,
                "content": {"application/json": {"schema": {"$ref": "#/components/schemas/User"}}},
            }
        },
        "schemas": {
            "User": {
                "type": "object",
                "required": ["name"],
                "properties": {"name": {"type": "string"}, "manager": {"$ref": "#/components/schemas/User"}},
            }
        },
    })

    endpoint = OpenApiConverter(document).convert().endpoints[0]

    body_schema = endpoint.request_body.content["application/json"]
    assert endpoint.request_body.required is True
    assert body_schema.required == ["name"]
    assert body_schema.properties["manager"].is_placeholder()
    assert endpoint.responses["201"].content["application/json"].properties["name"].type == "string"


def test_server_variables_and_relative_servers():
    document = _openapi({"/x": {"get": {"responses": {}}}}, servers=[{
        "url": "https://{region}.example.com/{version}",
        "variables": {"region": {"default": "eu"}, "version": {"default": "v2"}},
    }])
    assert OpenApiConverter(document).convert().base_url == "https://eu.example.com/v2"

    document["servers"] = [{"url": "/api"}]
    registration = OpenApiConverter(document, spec_url="https://docs.example.com/specs/openapi.json").convert()
    assert registration.base_url == "https://docs.example.com/api"


def test_base_url_override_wins():
    document = _openapi({"/x": {"get": {"responses": {}}}})
    registration = OpenApiConverter(document, base_url="https://override.example.com/").convert()
    assert registration.base_url == "https://override.example.com"


def test_missing_server_is_an_error():
    document = _openapi({"/x": {"get": {"responses": {}}}})
    del document["servers"]
    with pytest.raises(SpecParseError, match="No server URL"):
        OpenApiConverter(document, spec_url="https://docs.example.com/openapi.json").convert()


def test_missing_paths_is_an_error():
    with pytest.raises(SpecParseError, match="paths"):
        OpenApiConverter({"openapi": "3.0.0", "info": {"title": "x"}}).convert()


def test_duplicate_path_signatures_are_tolerated():
    document = _openapi({
        "/users/{id}": {"get": {"operationId": "byId", "responses": {}}},
        "/users/{name}": {"get": {"operationId": "byName", "responses": {}}},
    })

    converter = OpenApiConverter(document)
    assert any("MUST be unique" in d for d in converter.collect_diagnostics())
    assert [e.operation_id for e in converter.convert().endpoints] == ["byId", "byName"]


def test_structural_errors_are_fatal():
    document = _openapi({"users": {"get": {"responses": {}}}})
    with pytest.raises(SpecParseError) as exc_info:
        OpenApiConverter(document).convert()
    assert exc_info.value.diagnostics == ["The path 'users' MUST begin with a slash."]


@pytest.mark.parametrize("scheme, expected_type", [
    ({"type": "apiKey", "in": "query", "name": "api_key"}, ApiKeyAuth),
    ({"type": "http", "scheme": "bearer"}, BearerAuth),
    ({"type": "http", "scheme": "basic"}, BasicAuth),
    ({"type": "mutualTLS"}, NoAuth),
])
def test_first_security_scheme_is_mapped(scheme, expected_type):
    document = _openapi({"/x": {"get": {"responses": {}}}}, components={"securitySchemes": {"main": scheme}})
    registration = OpenApiConverter(document).convert()
    assert isinstance(registration.auth, expected_type)


def test_api_key_scheme_details():
    document = _openapi({"/x": {"get": {"responses": {}}}},
                        components={"securitySchemes": {"key": {"type": "apiKey", "in": "query", "name": "api_key"}}})
    registration = OpenApiConverter(document).convert()
    auth = registration.auth
    assert auth.location == "query"
    assert auth.parameter_name == "api_key"
    assert auth.secret.secret_name == f"{registration.id}-apikey"


def test_oauth2_prefers_client_credentials():
    document = _openapi({"/x": {"get": {"responses": {}}}}, components={"securitySchemes": {"oauth": {
        "type": "oauth2",
        "flows": {
            "authorizationCode": {
                "authorizationUrl": "https://auth.example.com/authorize",
                "tokenUrl": "https://auth.example.com/code-token",
                "scopes": {},
            },
            "clientCredentials": {
                "tokenUrl": "https://auth.example.com/token",
                "scopes": {"read": "Read", "write": "Write"},
            },
        },
    }}})

    auth = OpenApiConverter(document).convert().auth

    assert isinstance(auth, OAuth2Auth)
    assert auth.flow == "client_credentials"
    assert auth.token_url == "https://auth.example.com/token"
    assert auth.scopes == ["read", "write"]
    assert auth.client_id.secret_name.endswith("-clientid")


def test_oauth2_without_supported_flow_is_an_error():
    document = _openapi({"/x": {"get": {"responses": {}}}}, components={"securitySchemes": {"oauth": {
        "type": "oauth2",
        "flows": {"implicit": {"authorizationUrl": "https://auth.example.com", "scopes": {}}},
    }}})
    with pytest.raises(SpecParseError, match="No supported OAuth2 flow found"):
        OpenApiConverter(document).convert()


def test_swagger_document():
    document = {
        "swagger": "2.0",
        "info": {"title": "Pets", "version": "1"},
        "host": "petstore.example.com",
        "basePath": "/v2",
        "schemes": ["https"],
        "consumes": ["application/json"],
        "securityDefinitions": {
            "petstore_auth": {
                "type": "oauth2",
                "flow": "accessCode",
                "authorizationUrl": "https://petstore.example.com/oauth/authorize",
                "tokenUrl": "https://petstore.example.com/oauth/token",
                "scopes": {"write:pets": "modify pets"},
            }
        },
        "paths": {
            "/pet": {
                "post": {
                    "operationId": "addPet",
                    "parameters": [{"in": "body", "name": "body", "required": True,
                                    "schema": {"$ref": "#/definitions/Pet"}}],
                    "responses": {"200": {"description": "ok", "schema": {"$ref": "#/definitions/Pet"}}},
                }
            },
            "/pet/{petId}/uploadImage": {
                "post": {
                    "operationId": "uploadFile",
                    "parameters": [
                        {"name": "petId", "in": "path", "required": True, "type": "integer", "format": "int64"},
                        {"name": "file", "in": "formData", "type": "file", "required": True},
                    ],
                    "responses": {},
                }
            },
        },
        "definitions": {"Pet": {"type": "object", "properties": {"name": {"type": "string"}}}},
    }

    registration = OpenApiConverter(document).convert()

    assert registration.spec_format == "swagger-2.0"
    assert registration.base_url == "https://petstore.example.com/v2"
    assert registration.auth.flow == "authorization_code"
    add_pet, upload = registration.endpoints
    assert add_pet.parameters == []
    assert add_pet.request_body.required is True
    assert add_pet.request_body.content["application/json"].properties["name"].type == "string"
    assert add_pet.responses["200"].content["application/json"].type == "object"
    assert upload.parameters[0].schema_.type == "integer"
    assert upload.parameters[0].schema_.format == "int64"
    form = upload.request_body.content["multipart/form-data"]
    assert form.properties["file"].format == "binary"
    assert form.required == ["file"]


def test_read_document_accepts_yaml_bytes_and_streams():
    yaml_text = "openapi: 3.0.0\ninfo:\n  title: Y\npaths: {}\n"
    assert read_document(yaml_text)["info"]["title"] == "Y"
    assert read_document(yaml_text.encode("utf-8"))["openapi"] == "3.0.0"
    assert read_document(io.StringIO(json.dumps({"a": 1}))) == {"a": 1}


@pytest.mark.parametrize("text", ["", "   ", "- just\n- a list\n", "key: [unclosed"])
def test_read_document_rejects_garbage(text):
    with pytest.raises(SpecParseError):
        read_document(text)


@pytest_asyncio.fixture
async def spec_client(aiohttp_client):
    app = web.Application()

    async def spec_handler(request):
        return web.json_response(_openapi({"/users/{id}": {"get": {"operationId": "getUser", "responses": {}}}}))

    async def missing_handler(request):
        raise web.HTTPNotFound(text="Not found")

    app.router.add_get("/openapi.json", spec_handler)
    app.router.add_get("/missing.json", missing_handler)
    return await aiohttp_client(app)


@pytest.mark.asyncio
async def test_parse_url(spec_client):
    spec_url = str(spec_client.make_url("/openapi.json"))
    registration = await OpenApiIngestor(timeout=5).parse_url(spec_url)
    assert registration.spec_url == spec_url
    assert registration.endpoints[0].operation_id == "getUser"


@pytest.mark.asyncio
async def test_parse_url_propagates_http_errors(spec_client):
    import aiohttp

    with pytest.raises(aiohttp.ClientResponseError):
        await OpenApiIngestor(timeout=5).parse_url(str(spec_client.make_url("/missing.json")))
