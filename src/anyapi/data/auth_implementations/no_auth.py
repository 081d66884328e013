from typing import Literal

from pydantic import ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class NoAuth(AuthConfig):
    """REQUIRED
    The API needs no credentials.

    Attributes:
        auth_type: The authentication type identifier, always "none".
    """
    auth_type: Literal["none"] = "none"


class NoAuthSerializer(Serializer[NoAuth]):
    """REQUIRED
    Serializer for NoAuth model."""
    def to_dict(self, obj: NoAuth) -> dict:
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> NoAuth:
        try:
            return NoAuth.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid NoAuth: {e}") from e
