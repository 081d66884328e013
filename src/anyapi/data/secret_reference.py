from typing import Optional

from pydantic import BaseModel, ValidationError, model_validator

from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer


class SecretReference(BaseModel):
    """REQUIRED
    Pointer to a credential, never the credential itself.

    Exactly one form is populated:

    - encrypted: ``encrypted_value``, ``iv`` and ``auth_tag`` (base64), produced
      by SecretCrypto for a specific tenant.
    - vault: ``secret_name`` with optional ``version`` and ``vault_uri``, read
      through the configured SecretStore.

    Attributes:
        encrypted_value: Base64 AES-GCM ciphertext.
        iv: Base64 96-bit nonce.
        auth_tag: Base64 128-bit authentication tag.
        secret_name: Name of the secret in the external vault.
        version: Optional vault version.
        vault_uri: Optional vault location.
    """
    encrypted_value: Optional[str] = None
    iv: Optional[str] = None
    auth_tag: Optional[str] = None
    secret_name: Optional[str] = None
    version: Optional[str] = None
    vault_uri: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_form(self) -> "SecretReference":
        triple = [self.encrypted_value, self.iv, self.auth_tag]
        present = [part is not None for part in triple]
        if any(present) and not all(present):
            raise ValueError("encrypted_value, iv and auth_tag must be provided together")
        if all(present) and self.secret_name is not None:
            raise ValueError("a secret reference cannot be both encrypted and a vault reference")
        if not all(present) and self.secret_name is None:
            raise ValueError("a secret reference needs either an encrypted value or a secret_name")
        return self

    @property
    def is_encrypted(self) -> bool:
        return self.encrypted_value is not None

    @classmethod
    def vault(cls, secret_name: str, version: Optional[str] = None, vault_uri: Optional[str] = None) -> "SecretReference":
        return cls(secret_name=secret_name, version=version, vault_uri=vault_uri)


class SecretReferenceSerializer(Serializer[SecretReference]):
    """REQUIRED
    Serializer for SecretReference model."""
    def to_dict(self, obj: SecretReference) -> dict:
        return obj.model_dump(exclude_none=True)

    def validate_dict(self, obj: dict) -> SecretReference:
        try:
            return SecretReference.model_validate(obj)
        except ValidationError as e:
            raise AnyApiSerializerValidationError(f"Invalid SecretReference: {e}") from e
