"""Registration model: one ingested API owned by one tenant."""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Union
import traceback
import uuid

from pydantic import BaseModel, Field, computed_field, field_serializer, field_validator

from anyapi.data.auth import AuthConfig, AuthConfigSerializer
from anyapi.data.auth_implementations import NoAuth
from anyapi.data.endpoint import Endpoint
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer

SpecFormat = Literal["openapi-3.0", "openapi-3.1", "swagger-2.0", "graphql", "graphql-sdl", "postman-2.1"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_etag() -> str:
    return uuid.uuid4().hex


class Registration(BaseModel):
    """REQUIRED
    A registered API and everything needed to invoke it.

    Attributes:
        id: Stable identifier derived from the API name and source URL.
        owner_id: Tenant that owns the registration.
        display_name: Human readable API name.
        base_url: Base URL every endpoint path is appended to.
        spec_url: Where the description was fetched from, if anywhere.
        spec_format: Format of the ingested description.
        api_version: Version declared by the description.
        description: Optional API description.
        auth: Authentication configuration. Secrets are references only.
        endpoints: Invocable operations.
        is_enabled: Whether the API may be invoked.
        created_at: Registration time.
        last_refreshed: Last time the description was re-ingested.
        etag: Concurrency token, replaced on every store write.
    """
    id: str
    owner_id: str = ""
    display_name: str
    base_url: str
    spec_url: Optional[str] = None
    spec_format: SpecFormat = "openapi-3.0"
    api_version: Optional[str] = None
    description: Optional[str] = None
    auth: AuthConfig = Field(default_factory=NoAuth)
    endpoints: List[Endpoint] = Field(default_factory=list)
    is_enabled: bool = True
    created_at: datetime = Field(default_factory=_utc_now)
    last_refreshed: datetime = Field(default_factory=_utc_now)
    etag: str = Field(default_factory=new_etag)

    @computed_field
    @property
    def enabled_endpoint_count(self) -> int:
        return sum(1 for e in self.endpoints if e.is_enabled)

    @field_serializer("auth")
    def serialize_auth(self, auth: AuthConfig):
        return AuthConfigSerializer().to_dict(auth)

    @field_validator("auth", mode="before")
    @classmethod
    def validate_auth(cls, v: Union[AuthConfig, dict, None]):
        if v is None:
            return NoAuth()
        if isinstance(v, AuthConfig):
            return v
        return AuthConfigSerializer().validate_dict(v)

    def get_endpoint(self, operation_id: str) -> Optional[Endpoint]:
        for endpoint in self.endpoints:
            if endpoint.operation_id == operation_id or endpoint.id == operation_id:
                return endpoint
        return None


class RegistrationSerializer(Serializer[Registration]):
    """REQUIRED
    Serializer for registrations.

    The derived ``enabled_endpoint_count`` is written for readers of the
    stored document and ignored when reading it back.
    """
    def to_dict(self, obj: Registration) -> dict:
        """REQUIRED
        Convert a Registration object to a JSON-compatible dictionary.

        Args:
            obj: The Registration object to convert.

        Returns:
            The dictionary converted from the Registration object.
        """
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)

    def validate_dict(self, obj: dict) -> Registration:
        """REQUIRED
        Validate a dictionary and convert it to a Registration object.

        Args:
            obj: The dictionary to validate and convert.

        Returns:
            The Registration object converted from the dictionary.
        """
        try:
            data = {k: v for k, v in obj.items() if k != "enabled_endpoint_count"}
            return Registration.model_validate(data)
        except Exception as e:
            raise AnyApiSerializerValidationError("Invalid Registration: " + traceback.format_exc()) from e
