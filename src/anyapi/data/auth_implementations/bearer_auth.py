from typing import ClassVar, Literal, Tuple

from pydantic import Field, ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class BearerAuth(AuthConfig):
    """REQUIRED
    Authentication using a static bearer token.

    The Authorization header is sent as ``{prefix} {token}``.

    Attributes:
        auth_type: The authentication type identifier, always "bearer".
        prefix: Scheme word placed before the token.
        secret: Reference to the token.
    """

    auth_type: Literal["bearer"] = "bearer"
    prefix: str = Field("Bearer", description="Scheme word placed before the token.")
    secret: SecretReference = Field(..., description="Reference to the bearer token.")

    SECRET_FIELDS: ClassVar[Tuple[str, ...]] = ("secret",)


class BearerAuthSerializer(Serializer[BearerAuth]):
    """REQUIRED
    Serializer for BearerAuth model."""
    def to_dict(self, obj: BearerAuth) -> dict:
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> BearerAuth:
        try:
            return BearerAuth.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid BearerAuth: {e}") from e
