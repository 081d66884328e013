from typing import Dict, Optional
import os
import traceback

from dotenv import dotenv_values
from pydantic import BaseModel, Field

from anyapi.exceptions import AnyApiSerializerValidationError
from anyapi.interfaces.serializer import Serializer

ENV_PREFIX = "ANYAPI_"


class AnyApiConfig(BaseModel):
    """REQUIRED
    Configuration of the AnyAPI engine.

    Attributes:
        master_key: Base64 32-byte master key for per-tenant secret encryption.
            Encrypted secrets cannot be created or read without it.
        schema_max_depth: Depth at which schema normalization stops expanding.
        oauth2_refresh_buffer_seconds: An OAuth2 token is refreshed when it
            expires within this many seconds.
        http_timeout_seconds: Timeout of a dynamic invocation.
        spec_fetch_timeout_seconds: Timeout of a description download or introspection.
        discovery_timeout_seconds: Timeout of each discovery probe.
        user_agent: User-Agent sent on invocations that don't set one.

    Example:
        ```python
        config = load_config(".env")
        crypto = SecretCrypto(config.master_key)
        ```
    """
    master_key: Optional[str] = None
    schema_max_depth: int = Field(10, ge=1)
    oauth2_refresh_buffer_seconds: float = Field(30.0, ge=0)
    http_timeout_seconds: float = Field(30.0, gt=0)
    spec_fetch_timeout_seconds: float = Field(30.0, gt=0)
    discovery_timeout_seconds: float = Field(5.0, gt=0)
    user_agent: str = "AnyAPI/1.0"


class AnyApiConfigSerializer(Serializer[AnyApiConfig]):
    """REQUIRED
    Serializer for AnyApiConfig model."""
    def to_dict(self, obj: AnyApiConfig) -> dict:
        return obj.model_dump()

    def validate_dict(self, data: dict) -> AnyApiConfig:
        try:
            return AnyApiConfig.model_validate(data)
        except Exception as e:
            raise AnyApiSerializerValidationError("Invalid AnyApiConfig: " + traceback.format_exc()) from e


def _prefixed(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in values.items()
        if key.startswith(ENV_PREFIX) and value is not None
    }


def load_config(env_file_path: Optional[str] = None) -> AnyApiConfig:
    """Build the configuration from ``ANYAPI_*`` variables.

    Values from the .env file are read first and the process environment
    overrides them, so ``ANYAPI_MASTER_KEY`` set by the deployment wins over
    a checked-in development file.

    Args:
        env_file_path: Optional path to a .env file.

    Returns:
        The validated configuration.
    """
    values: Dict[str, str] = {}
    if env_file_path:
        values.update(_prefixed(dotenv_values(env_file_path)))
    values.update(_prefixed(dict(os.environ)))
    return AnyApiConfigSerializer().validate_dict(values)
