from anyapi.exceptions.anyapi_error import AnyApiError


class AuthResolutionError(AnyApiError):
    """Exception raised when credentials for an outbound call cannot be produced.

    Raised for missing tenant context on encrypted secrets, vault references
    without a configured vault, unknown auth variants and failed token requests.
    An invocation is never sent unauthenticated after this error.
    """
