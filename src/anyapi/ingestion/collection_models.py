"""Pydantic models of the Postman collection v2.0/v2.1 export format.

Exports in the wild mix shorthand and long forms: URLs given as plain
strings, descriptions given as ``{"content": ...}`` objects, path segments
given as ``{"value": ...}`` objects and auth parameters given as either a
list of key/value pairs or a mapping. The validators below fold every form
into one shape.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def _description_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, dict):
        content = value.get("content")
        return content if isinstance(content, str) else None
    return value if isinstance(value, str) else str(value)


class _PostmanModel(BaseModel):
    model_config = {"extra": "ignore", "validate_by_name": True, "validate_by_alias": True}


class PostmanKeyValue(_PostmanModel):
    key: str = ""
    value: Optional[str] = None
    description: Optional[str] = None
    disabled: bool = False
    type: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> Optional[str]:
        return _description_text(v)

    @field_validator("value", mode="before")
    @classmethod
    def _value(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)

    @field_validator("key", mode="before")
    @classmethod
    def _key(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("disabled", mode="before")
    @classmethod
    def _disabled(cls, v: Any) -> bool:
        return bool(v)


class PostmanUrl(_PostmanModel):
    raw: Optional[str] = None
    protocol: Optional[str] = None
    host: Optional[List[str]] = None
    port: Optional[str] = None
    path: Optional[List[str]] = None
    query: List[PostmanKeyValue] = Field(default_factory=list)
    variable: List[PostmanKeyValue] = Field(default_factory=list)

    @field_validator("host", mode="before")
    @classmethod
    def _host(cls, v: Any) -> Optional[List[str]]:
        if isinstance(v, str):
            return v.split(".") if v else None
        return v

    @field_validator("path", mode="before")
    @classmethod
    def _path(cls, v: Any) -> Optional[List[str]]:
        if isinstance(v, str):
            return [segment for segment in v.split("/") if segment]
        if isinstance(v, list):
            segments = []
            for segment in v:
                if isinstance(segment, dict):
                    segment = segment.get("value")
                if segment is not None:
                    segments.append(str(segment))
            return segments
        return v

    @field_validator("port", mode="before")
    @classmethod
    def _port(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("query", "variable", mode="before")
    @classmethod
    def _list(cls, v: Any) -> list:
        return v or []


class PostmanBody(_PostmanModel):
    mode: Optional[str] = None
    raw: Optional[str] = None
    formdata: Optional[List[PostmanKeyValue]] = None
    urlencoded: Optional[List[PostmanKeyValue]] = None


class PostmanAuth(_PostmanModel):
    type: str = "noauth"
    parameters: Dict[str, Dict[str, Optional[str]]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _fold_parameters(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "parameters" in data:
            return data
        auth_type = str(data.get("type") or "noauth")
        parameters: Dict[str, Dict[str, Optional[str]]] = {}
        for name, raw in data.items():
            if name == "type":
                continue
            if isinstance(raw, list):
                parameters[name.lower()] = {
                    str(p.get("key", "")).lower(): None if p.get("value") is None else str(p.get("value"))
                    for p in raw if isinstance(p, dict)
                }
            elif isinstance(raw, dict):
                parameters[name.lower()] = {
                    str(k).lower(): None if v is None else str(v) for k, v in raw.items()
                }
        return {"type": auth_type, "parameters": parameters}

    def get(self, key: str) -> Optional[str]:
        """Value of ``key`` in this auth type's parameter block."""
        return self.parameters.get(self.type.lower(), {}).get(key.lower())


class PostmanRequest(_PostmanModel):
    method: str = "GET"
    url: Optional[PostmanUrl] = None
    header: List[PostmanKeyValue] = Field(default_factory=list)
    body: Optional[PostmanBody] = None
    description: Optional[str] = None
    auth: Optional[PostmanAuth] = None

    @field_validator("url", mode="before")
    @classmethod
    def _url(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"raw": v}
        return v

    @field_validator("header", mode="before")
    @classmethod
    def _header(cls, v: Any) -> list:
        # Headers may also be given as a single raw "Key: Value" string
        if isinstance(v, str):
            headers = []
            for line in v.splitlines():
                key, sep, value = line.partition(":")
                if sep:
                    headers.append({"key": key.strip(), "value": value.strip()})
            return headers
        return v or []

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> Optional[str]:
        return _description_text(v)

    @field_validator("method", mode="before")
    @classmethod
    def _method(cls, v: Any) -> str:
        return str(v or "GET").upper()


class PostmanItem(_PostmanModel):
    name: str = ""
    description: Optional[str] = None
    request: Optional[PostmanRequest] = None
    item: Optional[List["PostmanItem"]] = None

    @field_validator("request", mode="before")
    @classmethod
    def _request(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"method": "GET", "url": {"raw": v}}
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> Optional[str]:
        return _description_text(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @property
    def is_folder(self) -> bool:
        return self.item is not None


PostmanItem.model_rebuild()


class PostmanInfo(_PostmanModel):
    name: Optional[str] = None
    postman_id: Optional[str] = Field(None, alias="_postman_id")
    description: Optional[str] = None
    schema_url: Optional[str] = Field(None, alias="schema")
    version: Optional[Union[str, Dict[str, Any]]] = None

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> Optional[str]:
        return _description_text(v)


class PostmanCollection(_PostmanModel):
    info: PostmanInfo = Field(default_factory=PostmanInfo)
    item: List[PostmanItem] = Field(default_factory=list)
    variable: List[PostmanKeyValue] = Field(default_factory=list)
    auth: Optional[PostmanAuth] = None

    @field_validator("variable", "item", mode="before")
    @classmethod
    def _list(cls, v: Any) -> list:
        return v or []

    def variables(self) -> Dict[str, Optional[str]]:
        return {v.key: v.value for v in self.variable if v.key}
