import logging
from typing import Optional

from anyapi.data.secret_reference import SecretReference
from anyapi.data.tenant_context import TenantSecretContext
from anyapi.exceptions import AuthResolutionError
from anyapi.interfaces.secret_store import SecretStore
from anyapi.secrets.secret_crypto import EncryptedData, SecretCrypto

logger = logging.getLogger(__name__)


class SecretResolver:
    """REQUIRED
    Turns SecretReferences into plaintext at call time.

    Encrypted references are decrypted with the tenant's derived key; vault
    references are read from the SecretStore.

    Attributes:
        crypto: Tenant encryption, required for encrypted references.
        store: Vault, required for ``secret_name`` references.
    """

    def __init__(self, crypto: Optional[SecretCrypto] = None, store: Optional[SecretStore] = None):
        self.crypto = crypto
        self.store = store

    async def resolve(self, reference: SecretReference, context: Optional[TenantSecretContext] = None) -> str:
        """REQUIRED
        Return the plaintext a reference points to.

        Raises:
            AuthResolutionError: If an encrypted reference comes without a
                tenant context, no crypto or vault is configured for the
                reference form, or the vault has no such secret.
            SecretCryptoError: If decryption fails authentication.
        """
        if reference.is_encrypted:
            if context is None:
                raise AuthResolutionError("Encrypted secret requires tenant context")
            if self.crypto is None:
                raise AuthResolutionError("Encrypted secret found but no master key is configured")
            return self.crypto.decrypt(
                context.tenant_id,
                context.encryption_salt,
                EncryptedData(
                    ciphertext=reference.encrypted_value,
                    iv=reference.iv,
                    auth_tag=reference.auth_tag,
                ),
            )

        if self.store is None:
            raise AuthResolutionError(f"Secret '{reference.secret_name}' is a vault reference but no secret store is configured")
        value = await self.store.get(reference.secret_name, reference.version)
        if value is None:
            raise AuthResolutionError(f"Secret '{reference.secret_name}' not found in secret store")
        logger.debug(f"Resolved secret '{reference.secret_name}' from secret store")
        return value

    def encrypt(self, plaintext: str, context: TenantSecretContext) -> SecretReference:
        """Encrypt a plaintext credential into an inline SecretReference."""
        if self.crypto is None:
            raise AuthResolutionError("Cannot encrypt secrets without a master key")
        data = self.crypto.encrypt(context.tenant_id, context.encryption_salt, plaintext)
        return SecretReference(encrypted_value=data.ciphertext, iv=data.iv, auth_tag=data.auth_tag)
