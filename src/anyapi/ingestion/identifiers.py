"""Deterministic identifiers for registrations and endpoints.

A registration id is ``{slug(name)}-{sha256(source_url)[:8]}``: readable,
stable across refreshes of the same source and distinct for two APIs that
share a title but live at different URLs.
"""

import hashlib
import re
from typing import Iterable, Optional, Set

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")

DEFAULT_SLUG = "api"


def to_slug(text: Optional[str]) -> str:
    """Lower-case ``text`` and collapse every run of other characters into one hyphen.

    Returns ``"api"`` when nothing survives.
    """
    if not text:
        return DEFAULT_SLUG
    slug = _NON_SLUG_CHARS.sub("-", text.lower()).strip("-")
    return slug or DEFAULT_SLUG


def compute_short_hash(value: str, length: int = 8) -> str:
    """First ``length`` lower-case hex characters of the SHA-256 of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def generate_registration_id(name: Optional[str], source_url: str) -> str:
    return f"{to_slug(name)}-{compute_short_hash(source_url or '')}"


def operation_id_to_endpoint_id(operation_id: str) -> str:
    return operation_id.lower().replace("_", "-")


class UniqueIdAllocator:
    """Hands out ids unique within one registration.

    The first request for ``x`` gets ``x``; later requests get ``x-2``,
    ``x-3`` and so on.
    """

    def __init__(self, taken: Iterable[str] = ()):
        self._taken: Set[str] = set(taken)

    def allocate(self, candidate: str) -> str:
        if candidate not in self._taken:
            self._taken.add(candidate)
            return candidate
        suffix = 2
        while f"{candidate}-{suffix}" in self._taken:
            suffix += 1
        unique = f"{candidate}-{suffix}"
        self._taken.add(unique)
        return unique
