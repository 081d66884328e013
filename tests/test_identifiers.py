import hashlib

import pytest

from anyapi.ingestion.identifiers import (
    UniqueIdAllocator,
    compute_short_hash,
    generate_registration_id,
    operation_id_to_endpoint_id,
    to_slug,
)


@pytest.mark.parametrize("text, expected", [
    ("Pet Store API", "pet-store-api"),
    ("  GitHub -- REST v3!! ", "github-rest-v3"),
    ("Ünïcode Name", "n-code-name"),
    ("!!!", "api"),
    ("", "api"),
    (None, "api"),
])
def test_to_slug(text, expected):
    assert to_slug(text) == expected


def test_registration_id_is_slug_plus_url_hash():
    url = "https://petstore.example.com/openapi.json"
    expected_hash = hashlib.sha256(url.encode("utf-8")).hexdigest()[:8]

    assert generate_registration_id("Pet Store", url) == f"pet-store-{expected_hash}"
    assert compute_short_hash(url) == expected_hash


def test_registration_id_is_stable_and_url_sensitive():
    first = generate_registration_id("Pet Store", "https://a.example.com")
    assert first == generate_registration_id("Pet Store", "https://a.example.com")
    assert first != generate_registration_id("Pet Store", "https://b.example.com")


def test_operation_id_to_endpoint_id():
    assert operation_id_to_endpoint_id("get_Users_byId") == "get-users-byid"


def test_unique_id_allocator_suffixes_collisions():
    ids = UniqueIdAllocator()
    assert ids.allocate("get-user") == "get-user"
    assert ids.allocate("get-user") == "get-user-2"
    assert ids.allocate("get-user") == "get-user-3"
    assert ids.allocate("list-users") == "list-users"


def test_unique_id_allocator_skips_taken_suffixes():
    ids = UniqueIdAllocator(taken=["x", "x-2"])
    assert ids.allocate("x") == "x-3"
