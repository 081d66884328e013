from anyapi.exceptions.anyapi_error import AnyApiError


class ConcurrencyConflictError(AnyApiError):
    """Exception raised when a write carries an outdated etag."""

    def __init__(self, api_id: str, expected: str, actual: str):
        self.api_id = api_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Registration '{api_id}' was modified concurrently (etag {expected} != {actual})")
