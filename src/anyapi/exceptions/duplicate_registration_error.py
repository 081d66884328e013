from anyapi.exceptions.anyapi_error import AnyApiError


class DuplicateRegistrationError(AnyApiError):
    """Exception raised when an owner registers an API id that already exists."""

    def __init__(self, owner_id: str, api_id: str):
        self.owner_id = owner_id
        self.api_id = api_id
        super().__init__(f"API '{api_id}' is already registered for owner '{owner_id}'. Use refresh instead.")
