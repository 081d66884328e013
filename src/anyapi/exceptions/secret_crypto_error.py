from anyapi.exceptions.anyapi_error import AnyApiError


class SecretCryptoError(AnyApiError):
    """Exception raised when a ciphertext fails authentication or cannot be decoded."""
