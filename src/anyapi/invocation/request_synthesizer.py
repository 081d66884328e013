"""Turns an endpoint plus runtime parameter values into a concrete HTTP request.

Placement rules:
    - path parameters are substituted URL-escaped into the path template
    - query parameters are appended to any query already on the base URL
    - header and cookie parameters are copied as text
    - for POST, PUT and PATCH an explicit ``body`` value is sent as-is
      (strings) or JSON-encoded; otherwise every value that is not a
      declared path/query/header/cookie parameter becomes a JSON object body

Validation happens before anything is built and reports every missing
required input at once.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, Field

from anyapi.data.endpoint import Endpoint
from anyapi.data.param_value import ParamValue
from anyapi.exceptions import InvocationValidationError

BODY_METHODS = ("POST", "PUT", "PATCH")

BODY_KEY = "body"

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"

NON_BODY_LOCATIONS = ("path", "query", "header", "cookie")


class SynthesizedRequest(BaseModel):
    """REQUIRED
    A fully resolved outbound HTTP request.

    Attributes:
        method: Upper-case HTTP method.
        url: Absolute URL including query string and fragment.
        headers: Request headers.
        cookies: Cookies to send.
        body: Serialized body text, if any.
        content_type: Media type of ``body``.
    """
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    content_type: Optional[str] = None

    def add_query_parameter(self, name: str, value: str) -> None:
        scheme, netloc, path, query, fragment = urlsplit(self.url)
        items = parse_qsl(query, keep_blank_values=True)
        items.append((name, value))
        self.url = urlunsplit((scheme, netloc, path, urlencode(items, quote_via=quote), fragment))

    def has_header(self, name: str) -> bool:
        return any(key.lower() == name.lower() for key in self.headers)


def _tagged(parameters: Optional[Mapping[str, Any]]) -> Dict[str, ParamValue]:
    return {str(name): ParamValue.of(value) for name, value in (parameters or {}).items()}


def _present(values: Dict[str, ParamValue], name: str) -> bool:
    return name in values and not values[name].is_null


def find_missing(endpoint: Endpoint, values: Dict[str, ParamValue]) -> List[str]:
    """List every required input absent from ``values``."""
    missing = [
        p.display_name()
        for p in endpoint.parameters
        if p.required and not _present(values, p.name)
    ]
    if endpoint.request_body is not None and endpoint.request_body.required:
        if not _present(values, BODY_KEY) and not _body_fields(endpoint, values):
            missing.append(BODY_KEY)
    return missing


def validate_parameters(endpoint: Endpoint, parameters: Optional[Mapping[str, Any]]) -> None:
    """Raise InvocationValidationError naming every missing required input."""
    missing = find_missing(endpoint, _tagged(parameters))
    if missing:
        raise InvocationValidationError(missing)


def _body_fields(endpoint: Endpoint, values: Dict[str, ParamValue]) -> Dict[str, ParamValue]:
    placed = {p.name for p in endpoint.parameters if p.location in NON_BODY_LOCATIONS}
    return {
        name: value
        for name, value in values.items()
        if name != BODY_KEY and name not in placed and not value.is_null
    }


def _body_media_type(endpoint: Endpoint) -> str:
    if endpoint.request_body is not None and len(endpoint.request_body.content) == 1:
        return next(iter(endpoint.request_body.content))
    return JSON_MEDIA_TYPE


def _encode_body(value: ParamValue, media_type: str) -> Tuple[str, str]:
    if value.kind == "string":
        return value.value, media_type
    if media_type == FORM_MEDIA_TYPE and value.kind == "map":
        return urlencode([(k, v.to_text()) for k, v in value.value.items()], quote_via=quote), media_type
    if "json" not in media_type:
        media_type = JSON_MEDIA_TYPE
    return json.dumps(value.to_json()), media_type


def _query_items(values: Dict[str, ParamValue], endpoint: Endpoint) -> List[Tuple[str, str]]:
    items: List[Tuple[str, str]] = []
    for param in endpoint.parameters_in("query"):
        if not _present(values, param.name):
            continue
        value = values[param.name]
        if value.kind == "list":
            items.extend((param.name, member.to_text()) for member in value.value if not member.is_null)
        else:
            items.append((param.name, value.to_text()))
    return items


def build_url(base_url: str, endpoint: Endpoint, values: Dict[str, ParamValue]) -> str:
    template, _, fragment = endpoint.path.partition("#")
    for param in endpoint.parameters_in("path"):
        if _present(values, param.name):
            template = template.replace("{" + param.name + "}", quote(values[param.name].to_text(), safe=""))

    scheme, netloc, base_path, base_query, _ = urlsplit(base_url)
    path = base_path.rstrip("/") + "/" + template.lstrip("/") if template else base_path
    query_items = parse_qsl(base_query, keep_blank_values=True) + _query_items(values, endpoint)
    query = urlencode(query_items, quote_via=quote) if query_items else ""
    return urlunsplit((scheme, netloc, path, query, fragment))


def synthesize_request(base_url: str, endpoint: Endpoint,
                       parameters: Optional[Mapping[str, Any]] = None) -> SynthesizedRequest:
    """Build the request for one invocation of ``endpoint``.

    Args:
        base_url: Registration base URL.
        endpoint: Endpoint to invoke.
        parameters: Parameter values by name, plain Python values or ParamValues.
            The key ``body`` supplies an explicit request body.

    Returns:
        The synthesized request.

    Raises:
        InvocationValidationError: If required inputs are missing.
        TypeError: If a value cannot be represented as a ParamValue.
    """
    values = _tagged(parameters)
    missing = find_missing(endpoint, values)
    if missing:
        raise InvocationValidationError(missing)

    method = endpoint.method.upper()
    request = SynthesizedRequest(method=method, url=build_url(base_url, endpoint, values))

    for param in endpoint.parameters_in("header"):
        if _present(values, param.name):
            request.headers[param.name] = values[param.name].to_text()
    for param in endpoint.parameters_in("cookie"):
        if _present(values, param.name):
            request.cookies[param.name] = values[param.name].to_text()

    if method in BODY_METHODS:
        media_type = _body_media_type(endpoint)
        if _present(values, BODY_KEY):
            request.body, request.content_type = _encode_body(values[BODY_KEY], media_type)
        else:
            fields = _body_fields(endpoint, values)
            if fields:
                request.body, request.content_type = _encode_body(ParamValue.of(fields), media_type)
        if request.body is not None and not request.has_header("Content-Type"):
            request.headers["Content-Type"] = request.content_type

    return request
