from anyapi.exceptions.anyapi_error import AnyApiError
from anyapi.exceptions.anyapi_serializer_validation_error import AnyApiSerializerValidationError
from anyapi.exceptions.spec_parse_error import SpecParseError
from anyapi.exceptions.invocation_validation_error import InvocationValidationError
from anyapi.exceptions.auth_resolution_error import AuthResolutionError
from anyapi.exceptions.secret_crypto_error import SecretCryptoError
from anyapi.exceptions.unsafe_url_error import UnsafeUrlError
from anyapi.exceptions.registration_not_found_error import RegistrationNotFoundError
from anyapi.exceptions.duplicate_registration_error import DuplicateRegistrationError
from anyapi.exceptions.concurrency_conflict_error import ConcurrencyConflictError
from anyapi.exceptions.api_disabled_error import ApiDisabledError

__all__ = [
    "AnyApiError",
    "AnyApiSerializerValidationError",
    "SpecParseError",
    "InvocationValidationError",
    "AuthResolutionError",
    "SecretCryptoError",
    "UnsafeUrlError",
    "RegistrationNotFoundError",
    "DuplicateRegistrationError",
    "ConcurrencyConflictError",
    "ApiDisabledError",
]
