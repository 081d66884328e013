"""Authentication configuration attached to a registration.

The configuration is a closed tagged union keyed by ``auth_type``. Secret
material is never stored inline: every credential field holds a
SecretReference that is resolved at call time.
"""

from abc import ABC
from typing import ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel

from anyapi.data.secret_reference import SecretReference
from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer
import traceback


class AuthConfig(BaseModel, ABC):
    """REQUIRED
    Authentication configuration of a registered API.

    Attributes:
        auth_type: The authentication type identifier.
        name: Optional human readable name of the scheme.
    """
    auth_type: str
    name: Optional[str] = None

    SECRET_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def secret_fields(self) -> Dict[str, SecretReference]:
        """Return the populated SecretReference fields keyed by field name."""
        return {
            field: value
            for field, value in self
            if isinstance(value, SecretReference)
        }

    def with_secrets(self, secrets: Dict[str, SecretReference]) -> "AuthConfig":
        """Return a copy with the given secret fields replaced."""
        unknown = set(secrets) - set(self.secret_field_names())
        if unknown:
            raise ValueError(f"{self.auth_type} auth has no secret fields {sorted(unknown)}")
        return self.model_copy(update=secrets)

    @classmethod
    def secret_field_names(cls) -> Tuple[str, ...]:
        return cls.SECRET_FIELDS


class AuthConfigSerializer(Serializer[AuthConfig]):
    """REQUIRED
    Serializer for authentication configurations.

    Dispatches on ``auth_type`` to the serializer registered for each
    variant. A dictionary without ``auth_type`` decodes as no authentication;
    an unknown ``auth_type`` is a validation error.
    """
    auth_serializers: Dict[str, Serializer[AuthConfig]] = {}
    default_auth_type = "none"

    def __init__(self):
        # Importing the implementations package registers every variant
        import anyapi.data.auth_implementations  # noqa: F401

    def to_dict(self, obj: AuthConfig) -> dict:
        """REQUIRED
        Convert an AuthConfig object to a dictionary that always carries ``auth_type``.

        Args:
            obj: The AuthConfig object to convert.

        Returns:
            The dictionary converted from the AuthConfig object.
        """
        return AuthConfigSerializer.auth_serializers[obj.auth_type].to_dict(obj)

    def validate_dict(self, obj: dict) -> AuthConfig:
        """REQUIRED
        Validate a dictionary and convert it to an AuthConfig object.

        Args:
            obj: The dictionary to validate and convert.

        Returns:
            The AuthConfig object converted from the dictionary.
        """
        if not isinstance(obj, dict):
            raise AnyApiSerializerValidationError(f"Invalid AuthConfig: expected a mapping, got {type(obj).__name__}")
        auth_type = obj.get("auth_type") or AuthConfigSerializer.default_auth_type
        serializer = AuthConfigSerializer.auth_serializers.get(auth_type)
        if serializer is None:
            raise AnyApiSerializerValidationError(f"Invalid auth type: {auth_type}")
        try:
            return serializer.validate_dict({**obj, "auth_type": auth_type})
        except AnyApiSerializerValidationError:
            raise
        except Exception as e:
            raise AnyApiSerializerValidationError("Invalid AuthConfig: " + traceback.format_exc()) from e


def register_auth(auth_type: str, serializer: Serializer[AuthConfig], override: bool = False) -> bool:
    """Register the serializer for one ``auth_type``.

    Returns:
        False if the type was already registered and ``override`` is not set.
    """
    if not override and auth_type in AuthConfigSerializer.auth_serializers:
        return False
    AuthConfigSerializer.auth_serializers[auth_type] = serializer
    return True
