from anyapi.exceptions.anyapi_error import AnyApiError


class SpecParseError(AnyApiError):
    """Exception raised when an API description cannot be ingested.

    Covers undecodable or structurally invalid OpenAPI documents, a missing
    server URL, an unsupported OAuth2 flow, GraphQL syntax errors and
    introspection responses carrying errors or lacking a schema.

    Attributes:
        diagnostics: Parser messages that caused the failure, if any.
    """
    diagnostics: list

    def __init__(self, message: str, diagnostics: list = None):
        self.diagnostics = list(diagnostics or [])
        if self.diagnostics:
            message = f"{message}: {'; '.join(self.diagnostics)}"
        super().__init__(message)
