"""Per-tenant authenticated encryption of stored credentials.

Each tenant gets its own AES-256-GCM key, derived from the engine master key
with HKDF-SHA256 using the tenant's random salt and its id as context. A
ciphertext encrypted for one tenant therefore fails authentication for any
other tenant, salt or master key.
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import BaseModel

from anyapi.exceptions import SecretCryptoError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
SALT_SIZE = 32

HKDF_INFO_PREFIX = "anyapi-tenant-encryption:"


class EncryptedData(BaseModel):
    """REQUIRED
    Output of one encryption, every part base64 encoded.

    Attributes:
        ciphertext: Encrypted bytes without the tag.
        iv: 96-bit nonce.
        auth_tag: 128-bit GCM authentication tag.
    """
    ciphertext: str
    iv: str
    auth_tag: str


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SecretCryptoError(f"{what} is not valid base64") from e


def generate_salt() -> str:
    """Return a new random base64 tenant salt."""
    return base64.b64encode(os.urandom(SALT_SIZE)).decode("ascii")


class SecretCrypto:
    """REQUIRED
    Encrypts and decrypts secrets under per-tenant derived keys.

    Attributes:
        master_key_b64: Base64 encoding of the 32-byte master key.

    Raises:
        ValueError: If the master key is missing or not 32 bytes.
    """

    def __init__(self, master_key_b64: str):
        if not master_key_b64:
            raise ValueError("Master key is required for secret encryption")
        try:
            master_key = base64.b64decode(master_key_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Master key must be base64 encoded") from e
        if len(master_key) != KEY_SIZE:
            raise ValueError(f"Master key must be {KEY_SIZE} bytes, got {len(master_key)}")
        self._master_key = master_key

    generate_salt = staticmethod(generate_salt)

    def derive_tenant_key(self, tenant_id: str, salt: str) -> bytes:
        if not tenant_id:
            raise ValueError("tenant_id is required")
        if not salt:
            raise ValueError("salt is required")
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=_b64decode(salt, "Tenant salt"),
            info=(HKDF_INFO_PREFIX + tenant_id).encode("utf-8"),
        )
        return hkdf.derive(self._master_key)

    def encrypt(self, tenant_id: str, salt: str, plaintext: str) -> EncryptedData:
        """REQUIRED
        Encrypt a secret for a tenant with a fresh nonce.

        Args:
            tenant_id: Tenant the secret belongs to.
            salt: The tenant's base64 salt.
            plaintext: The secret value.

        Returns:
            The ciphertext, nonce and tag.

        Raises:
            ValueError: If any argument is empty.
        """
        if not plaintext:
            raise ValueError("plaintext is required")
        key = self.derive_tenant_key(tenant_id, salt)
        nonce = os.urandom(NONCE_SIZE)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return EncryptedData(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(nonce).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
        )

    def decrypt(self, tenant_id: str, salt: str, data: EncryptedData) -> str:
        """REQUIRED
        Decrypt and authenticate a secret.

        Raises:
            SecretCryptoError: If the tag does not verify under this tenant's
                key or any part is malformed.
            ValueError: If tenant id or salt is empty.
        """
        key = self.derive_tenant_key(tenant_id, salt)
        nonce = _b64decode(data.iv, "IV")
        tag = _b64decode(data.auth_tag, "Authentication tag")
        ciphertext = _b64decode(data.ciphertext, "Ciphertext")
        if len(nonce) != NONCE_SIZE:
            raise SecretCryptoError(f"IV must be {NONCE_SIZE} bytes")
        if len(tag) != TAG_SIZE:
            raise SecretCryptoError(f"Authentication tag must be {TAG_SIZE} bytes")
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise SecretCryptoError("Secret failed authentication: wrong tenant, salt or key, or tampered data") from e
        return plaintext.decode("utf-8")
