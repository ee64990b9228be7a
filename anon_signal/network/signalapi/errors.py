"""Request-surface error types."""


class ProtocolError(Exception):
    """Base error for request-surface issues."""


class SchemaError(ProtocolError):
    """Raised when a body or query fails schema validation."""


class SizeLimitError(ProtocolError):
    """Raised when a body exceeds configured size limits."""
