from pydantic import BaseModel


class TenantSecretContext(BaseModel):
    """REQUIRED
    Identity used to derive a tenant's encryption key.

    Attributes:
        tenant_id: Tenant identifier, bound into the key derivation.
        encryption_salt: Base64 per-tenant salt from SecretCrypto.generate_salt().
    """
    tenant_id: str
    encryption_salt: str

    model_config = {"frozen": True}
