from typing import ClassVar, List, Literal, Optional, Tuple

from pydantic import Field, ValidationError

from anyapi.data.auth import AuthConfig
from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class OAuth2Auth(AuthConfig):
    """REQUIRED
    Authentication using OAuth2.

    Tokens are obtained with the client credentials grant. For the
    authorization code flow a stored refresh token is exchanged with the
    refresh_token grant instead.

    Attributes:
        auth_type: The authentication type identifier, always "oauth2".
        flow: The OAuth2 flow declared by the API.
        token_url: The URL endpoint to fetch access tokens from.
        authorization_url: Authorization URL of the authorization code flow.
        client_id: Reference to the OAuth2 client identifier.
        client_secret: Reference to the OAuth2 client secret.
        scopes: Scopes requested with every token, joined with spaces.
        refresh_token: Optional reference to a long-lived refresh token.
    """

    auth_type: Literal["oauth2"] = "oauth2"
    flow: Literal["client_credentials", "authorization_code"] = Field("client_credentials", description="The OAuth2 flow.")
    token_url: str = Field(..., description="The URL to fetch the OAuth2 token from.")
    authorization_url: Optional[str] = Field(None, description="The OAuth2 authorization URL.")
    client_id: SecretReference = Field(..., description="Reference to the OAuth2 client ID.")
    client_secret: SecretReference = Field(..., description="Reference to the OAuth2 client secret.")
    scopes: List[str] = Field(default_factory=list, description="The OAuth2 scopes.")
    refresh_token: Optional[SecretReference] = Field(None, description="Reference to a refresh token.")

    SECRET_FIELDS: ClassVar[Tuple[str, ...]] = ("client_id", "client_secret", "refresh_token")


class OAuth2AuthSerializer(Serializer[OAuth2Auth]):
    """REQUIRED
    Serializer for OAuth2Auth model."""
    def to_dict(self, obj: OAuth2Auth) -> dict:
        """REQUIRED
        Convert an OAuth2Auth object to a dictionary.

        Args:
            obj: The OAuth2Auth object to convert.

        Returns:
            The dictionary converted from the OAuth2Auth object.
        """
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> OAuth2Auth:
        """REQUIRED
        Validate a dictionary and convert it to an OAuth2Auth object.

        Args:
            obj: The dictionary to validate and convert.

        Returns:
            The OAuth2Auth object converted from the dictionary.
        """
        try:
            return OAuth2Auth.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid OAuth2Auth: {e}") from e
