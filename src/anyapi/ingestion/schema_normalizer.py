"""Reduction of OpenAPI/JSON schemas to SimplifiedSchema trees.

Local ``$ref`` pointers are expanded in place. Two guards keep the output
finite: a depth limit, and the set of references currently being expanded
on the path from the root. A reference that reappears on its own ancestor
chain is replaced by an opaque placeholder instead of being expanded again.
The same reference in sibling branches is expanded in each of them.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Set
from urllib.parse import unquote
import logging

from anyapi.data.schema import SimplifiedSchema

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10

KNOWN_TYPES = {"string", "number", "integer", "boolean", "array", "object"}

def max_depth_placeholder() -> SimplifiedSchema:
    return SimplifiedSchema(type="object", description="(max depth reached)")


def circular_ref_placeholder(ref: str) -> SimplifiedSchema:
    return SimplifiedSchema(type="object", description=f"(circular ref to {ref})")


def unresolved_ref_placeholder(ref: str) -> SimplifiedSchema:
    return SimplifiedSchema(type="object", description=f"(unresolved ref {ref})")


def to_json_compatible(value: Any) -> Any:
    """Convert YAML-only scalars (dates, timestamps) into their ISO strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def resolve_pointer(document: Any, ref: str) -> Any:
    """Resolve a local ``#/...`` JSON pointer against ``document``.

    Returns:
        The target node, or None when the reference is not local or does not resolve.
    """
    if not isinstance(ref, str) or not ref.startswith("#"):
        return None
    if ref == "#":
        return document
    if not ref.startswith("#/"):
        return None
    node = document
    for raw_part in ref[2:].split("/"):
        part = unquote(raw_part).replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and part in node:
            node = node[part]
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return None
    return node


class SchemaNormalizer:
    """Converts raw schema dictionaries into SimplifiedSchema trees.

    Attributes:
        document: The document local references are resolved against.
        max_depth: Depth beyond which nodes become a placeholder.
    """

    def __init__(self, document: Optional[Dict[str, Any]] = None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.document = document or {}
        self.max_depth = max_depth

    def normalize(self, schema: Any) -> SimplifiedSchema:
        """Normalize one schema. Each call starts with fresh traversal state."""
        if schema is None:
            return SimplifiedSchema(type="object")
        return self._walk(schema, 0, set())

    def _walk(self, node: Any, depth: int, expanding: Set[str]) -> SimplifiedSchema:
        if depth > self.max_depth:
            return max_depth_placeholder()
        if not isinstance(node, dict):
            return SimplifiedSchema(type="object")

        if "$ref" in node:
            return self._walk_ref(node, depth, expanding)

        if "allOf" in node and isinstance(node["allOf"], list):
            return self._walk_all_of(node, depth, expanding)

        for combinator in ("oneOf", "anyOf"):
            variants = node.get(combinator)
            if isinstance(variants, list) and variants and "type" not in node and "properties" not in node:
                chosen = self._walk(variants[0], depth, expanding)
                description = node.get("description")
                if isinstance(description, str) and not chosen.is_placeholder():
                    chosen = chosen.model_copy(update={"description": description})
                return chosen

        return self._walk_plain(node, depth, expanding)

    def _walk_ref(self, node: Dict[str, Any], depth: int, expanding: Set[str]) -> SimplifiedSchema:
        ref = node["$ref"]
        if not isinstance(ref, str):
            return unresolved_ref_placeholder(str(ref))
        if ref in expanding:
            return circular_ref_placeholder(ref)
        target = resolve_pointer(self.document, ref)
        if not isinstance(target, dict):
            logger.warning(f"Could not resolve schema reference '{ref}'")
            return unresolved_ref_placeholder(ref)

        expanding.add(ref)
        try:
            result = self._walk(target, depth, expanding)
        finally:
            expanding.discard(ref)

        description = node.get("description")
        if isinstance(description, str) and not result.is_placeholder():
            result = result.model_copy(update={"description": description})
        return result

    def _walk_all_of(self, node: Dict[str, Any], depth: int, expanding: Set[str]) -> SimplifiedSchema:
        own = {k: v for k, v in node.items() if k != "allOf"}
        merged = None
        if "type" in own or "properties" in own:
            merged = self._walk_plain(own, depth, expanding)
        for member in node["allOf"]:
            part = self._walk(member, depth, expanding)
            merged = part if merged is None else _merge(merged, part)
        merged = merged or SimplifiedSchema(type="object")
        description = own.get("description")
        if isinstance(description, str) and not merged.is_placeholder():
            merged = merged.model_copy(update={"description": description})
        return merged

    def _walk_plain(self, node: Dict[str, Any], depth: int, expanding: Set[str]) -> SimplifiedSchema:
        schema_type, schema_format = _map_type(node)
        fields: Dict[str, Any] = {"type": schema_type}

        if schema_format is not None:
            fields["format"] = schema_format
        for key in ("description", "pattern"):
            if isinstance(node.get(key), str):
                fields[key] = node[key]
        for key in ("minLength", "maxLength"):
            if isinstance(node.get(key), int) and not isinstance(node.get(key), bool):
                fields[key] = node[key]
        for key in ("minimum", "maximum"):
            value = node.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                fields[key] = value
        if isinstance(node.get("enum"), list):
            values = [to_json_compatible(v) for v in node["enum"] if v is not None]
            if values:
                fields["enum"] = values
        for key in ("default", "example"):
            value = node.get(key)
            if value is not None:
                fields[key] = to_json_compatible(value)

        if schema_type == "array" and "items" in node:
            fields["items"] = self._walk(node["items"], depth + 1, expanding)

        properties = node.get("properties")
        if isinstance(properties, dict) and properties:
            fields["properties"] = {
                str(name): self._walk(prop, depth + 1, expanding)
                for name, prop in properties.items()
            }
        required = node.get("required")
        if isinstance(required, list):
            names = [r for r in required if isinstance(r, str)]
            if names:
                fields["required"] = names

        return SimplifiedSchema(**fields)


def _map_type(node: Dict[str, Any]) -> tuple:
    raw = node.get("type")
    if isinstance(raw, list):
        raw = next((t for t in raw if t != "null"), None)
    if raw is None:
        if "items" in node:
            return "array", node.get("format") if isinstance(node.get("format"), str) else None
        return "object", node.get("format") if isinstance(node.get("format"), str) else None
    schema_format = node.get("format") if isinstance(node.get("format"), str) else None
    if raw == "file":
        return "string", "binary"
    if raw in KNOWN_TYPES:
        return raw, schema_format
    return "string", schema_format


def _merge(base: SimplifiedSchema, part: SimplifiedSchema) -> SimplifiedSchema:
    if part.is_placeholder():
        if base.properties:
            return base
        return part
    properties: Optional[Dict[str, SimplifiedSchema]] = None
    if base.properties or part.properties:
        properties = {**(base.properties or {}), **(part.properties or {})}
    required: Optional[List[str]] = None
    if base.required or part.required:
        required = list(dict.fromkeys((base.required or []) + (part.required or [])))
    update: Dict[str, Any] = {
        "type": "object" if properties else base.type,
        "properties": properties,
        "required": required,
    }
    for key in ("format", "description", "pattern", "minLength", "maxLength",
                "minimum", "maximum", "enum", "items", "default", "example"):
        if getattr(base, key) is None and getattr(part, key) is not None:
            update[key] = getattr(part, key)
    return base.model_copy(update=update)


def normalize_schema(schema: Any, document: Optional[Dict[str, Any]] = None,
                     max_depth: int = DEFAULT_MAX_DEPTH) -> SimplifiedSchema:
    """Normalize ``schema`` against ``document`` with a fresh normalizer."""
    return SchemaNormalizer(document, max_depth).normalize(schema)
