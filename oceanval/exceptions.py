"""
Custom Exceptions for Forecast Verification.

Provides the error taxonomy of the verification engine. NotFound and
InvalidArgument are surfaced to the caller immediately; StoreTimeout is
raised only after the bounded store access has exhausted its retry.
"""


class VerificationError(Exception):
    """
    Base exception for verification failures.

    All engine exceptions inherit from this class, allowing for broad
    exception handling when needed.

    Attributes:
        message: Human-readable error description
        details: Additional context about the failure
    """

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    @property
    def error_type(self) -> str:
        """Short taxonomy name used in serialized results."""
        return type(self).__name__.replace("Error", "")


class NotFoundError(VerificationError):
    """
    Unknown station or model.

    Attributes:
        kind: What was looked up ("station", "model")
        identifier: The identifier that was not found
    """

    def __init__(self, kind: str, identifier: str):
        message = f"Unknown {kind} '{identifier}'"
        super().__init__(message, {"kind": kind, "identifier": identifier})
        self.kind = kind
        self.identifier = identifier


class InvalidArgumentError(VerificationError):
    """Malformed variable, lead time, depth request or sample."""

    pass


class InsufficientDataError(VerificationError):
    """
    Aggregation attempted over an empty or too-small sample.

    Never converted to a zero statistic: callers render "no data" instead.
    """

    pass


class StoreTimeoutError(VerificationError):
    """
    A bounded store or feed call exceeded its timeout.

    Attributes:
        operation: Name of the store operation
        timeout_seconds: The timeout that was exceeded
        attempts: Number of attempts made
    """

    def __init__(self, operation: str, timeout_seconds: float, attempts: int = 1):
        message = f"Store call '{operation}' timed out after {timeout_seconds} seconds"
        details = {
            "operation": operation,
            "timeout_seconds": timeout_seconds,
            "attempts": attempts,
        }
        super().__init__(message, details)
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        self.attempts = attempts


class QueryCancelledError(VerificationError):
    """The caller abandoned the query while it was being computed."""

    def __init__(self, message: str = "Query cancelled"):
        super().__init__(message)
