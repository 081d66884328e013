from anyapi.exceptions.anyapi_error import AnyApiError


class ApiDisabledError(AnyApiError):
    """Exception raised when invoking an API or endpoint that has been disabled."""

    def __init__(self, api_id: str, operation_id: str = None):
        self.api_id = api_id
        self.operation_id = operation_id
        target = f"API '{api_id}'" if operation_id is None else f"Operation '{operation_id}' of API '{api_id}'"
        super().__init__(f"{target} is disabled")
