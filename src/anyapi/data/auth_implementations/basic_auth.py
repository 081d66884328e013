from typing import ClassVar, Literal, Tuple

from pydantic import Field, ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class BasicAuth(AuthConfig):
    """REQUIRED
    Authentication using HTTP Basic Authentication.

    Uses the standard HTTP Basic Authentication scheme with username and password
    encoded in the Authorization header.

    Attributes:
        auth_type: The authentication type identifier, always "basic".
        username: Reference to the username.
        password: Reference to the password.
    """

    auth_type: Literal["basic"] = "basic"
    username: SecretReference = Field(..., description="Reference to the username.")
    password: SecretReference = Field(..., description="Reference to the password.")

    SECRET_FIELDS: ClassVar[Tuple[str, ...]] = ("username", "password")


class BasicAuthSerializer(Serializer[BasicAuth]):
    """REQUIRED
    Serializer for BasicAuth model."""
    def to_dict(self, obj: BasicAuth) -> dict:
        """REQUIRED
        Convert a BasicAuth object to a dictionary.

        Args:
            obj: The BasicAuth object to convert.

        Returns:
            The dictionary converted from the BasicAuth object.
        """
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> BasicAuth:
        """REQUIRED
        Validate a dictionary and convert it to a BasicAuth object.

        Args:
            obj: The dictionary to validate and convert.

        Returns:
            The BasicAuth object converted from the dictionary.
        """
        try:
            return BasicAuth.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid BasicAuth: {e}") from e
