from typing import ClassVar, Literal, Tuple

from pydantic import Field, ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class ApiKeyAuth(AuthConfig):
    """REQUIRED
    Authentication using an API key.

    Supports placement in headers, query parameters, or cookies.

    Attributes:
        auth_type: The authentication type identifier, always "api_key".
        location: Where to include the API key (header, query parameter, or cookie).
        parameter_name: The name of the header, query parameter, or cookie that
            carries the key.
        secret: Reference to the key itself.
    """

    auth_type: Literal["api_key"] = "api_key"
    location: Literal["header", "query", "cookie"] = Field(
        "header", description="Where to include the API key (header, query parameter, or cookie)."
    )
    parameter_name: str = Field(
        "X-API-Key", description="The name of the header, query parameter or cookie carrying the API key."
    )
    secret: SecretReference = Field(..., description="Reference to the API key.")

    SECRET_FIELDS: ClassVar[Tuple[str, ...]] = ("secret",)


class ApiKeyAuthSerializer(Serializer[ApiKeyAuth]):
    """REQUIRED
    Serializer for ApiKeyAuth model."""
    def to_dict(self, obj: ApiKeyAuth) -> dict:
        """REQUIRED
        Convert an ApiKeyAuth object to a dictionary.

        Args:
            obj: The ApiKeyAuth object to convert.

        Returns:
            The dictionary converted from the ApiKeyAuth object.
        """
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> ApiKeyAuth:
        """REQUIRED
        Validate a dictionary and convert it to an ApiKeyAuth object.

        Args:
            obj: The dictionary to validate and convert.

        Returns:
            The ApiKeyAuth object converted from the dictionary.
        """
        try:
            return ApiKeyAuth.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid ApiKeyAuth: {e}") from e
