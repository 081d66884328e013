class UnsafeUrlError(ValueError):
    """Exception raised when a URL points at a host the engine must not contact.

    Attributes:
        url: The rejected URL.
        reason: Short description of the rule that rejected it.
    """
    url: str
    reason: str

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"URL '{url}' is not allowed: {reason}")
