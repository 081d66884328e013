from typing import List


class InvocationValidationError(ValueError):
    """Exception raised when an invocation lacks required inputs.

    Every missing item is collected before raising so callers can report all
    of them at once.

    Attributes:
        missing: Missing items formatted as ``name (location)``, plus ``body``
            when a required request body was not supplied.
    """
    missing: List[str]

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required parameters: {', '.join(self.missing)}")
