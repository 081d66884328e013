from anyapi.exceptions.anyapi_error import AnyApiError


class RegistrationNotFoundError(AnyApiError):
    """Exception raised when a registration or endpoint does not exist for an owner."""

    def __init__(self, owner_id: str, api_id: str, operation_id: str = None):
        self.owner_id = owner_id
        self.api_id = api_id
        self.operation_id = operation_id
        target = f"API '{api_id}'" if operation_id is None else f"operation '{operation_id}' of API '{api_id}'"
        super().__init__(f"{target} not found for owner '{owner_id}'")
