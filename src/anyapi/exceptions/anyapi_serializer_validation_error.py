from anyapi.exceptions.anyapi_error import AnyApiError


class AnyApiSerializerValidationError(AnyApiError):
    """REQUIRED
    Exception raised when a serializer validation fails.

    Thrown by serializers when they cannot validate or convert data structures
    due to invalid format, missing required fields, or type mismatches.
    Contains the original validation error details for debugging.

    Usage:
        Typically caught when loading stored registrations or configuration
        that doesn't conform to the canonical model.
    """
