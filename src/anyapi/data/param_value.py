"""Tagged runtime parameter values.

Invocation parameters arrive as arbitrary Python values. ``ParamValue`` pins
each one to a closed set of kinds so placement rules (path, query, header,
body) can format it without guessing at runtime types.
"""

import json
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, model_validator

ParamKind = Literal["string", "number", "boolean", "list", "map", "null"]


class ParamValue(BaseModel):
    """REQUIRED
    A parameter value tagged with its kind.

    Attributes:
        kind: One of string, number, boolean, list, map or null.
        value: The Python value. Lists and maps hold ParamValue members.
    """
    kind: ParamKind
    value: Any = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _value_matches_kind(self) -> "ParamValue":
        expected = {
            "string": str,
            "number": (int, float),
            "boolean": bool,
            "list": list,
            "map": dict,
        }
        if self.kind == "null":
            if self.value is not None:
                raise ValueError("null ParamValue cannot carry a value")
        elif not isinstance(self.value, expected[self.kind]):
            raise ValueError(f"ParamValue of kind {self.kind} cannot hold {type(self.value).__name__}")
        elif self.kind == "number" and isinstance(self.value, bool):
            raise ValueError("booleans must use the boolean kind")
        return self

    @classmethod
    def of(cls, value: Any) -> "ParamValue":
        """Tag a plain Python value. ParamValues pass through unchanged.

        Raises:
            TypeError: If the value has no corresponding kind.
        """
        if isinstance(value, ParamValue):
            return value
        if value is None:
            return cls(kind="null")
        if isinstance(value, bool):
            return cls(kind="boolean", value=value)
        if isinstance(value, (int, float)):
            return cls(kind="number", value=value)
        if isinstance(value, str):
            return cls(kind="string", value=value)
        if isinstance(value, (list, tuple)):
            return cls(kind="list", value=[cls.of(v) for v in value])
        if isinstance(value, dict):
            return cls(kind="map", value={str(k): cls.of(v) for k, v in value.items()})
        raise TypeError(f"Unsupported parameter value type: {type(value).__name__}")

    @property
    def is_null(self) -> bool:
        return self.kind == "null"

    def to_json(self) -> Union[str, int, float, bool, None, List[Any], Dict[str, Any]]:
        """Return the JSON-compatible Python value."""
        if self.kind == "list":
            return [v.to_json() for v in self.value]
        if self.kind == "map":
            return {k: v.to_json() for k, v in self.value.items()}
        return self.value

    def to_text(self) -> str:
        """Return the text used when the value is placed in a path, query or header."""
        if self.kind == "null":
            return ""
        if self.kind == "boolean":
            return "true" if self.value else "false"
        if self.kind == "number":
            if isinstance(self.value, float) and self.value.is_integer():
                return str(int(self.value))
            return str(self.value)
        if self.kind == "list":
            return ",".join(v.to_text() for v in self.value)
        if self.kind == "map":
            return json.dumps(self.to_json(), separators=(",", ":"))
        return self.value
