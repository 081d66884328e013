class AnyApiError(Exception):
    """Base class for every error raised by the AnyAPI engine."""
