"""
Application errors for agent communication.

Every error carries enough context (endpoint, status, request id) for a caller
to decide on manual remediation. `retryable` is what the retry executor reads;
the API layer maps each class to an HTTP status.
"""


class AgentServiceError(Exception):
    """Base class for classified agent communication failures."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        endpoint: str | None = None,
        request_id: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.request_id = request_id
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "endpoint": self.endpoint,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }


class ConfigurationError(AgentServiceError):
    """Raised when a required credential or setting is missing. Never retried."""

    retryable = False


class PayloadValidationError(AgentServiceError):
    """Raised when a request payload is malformed before it is sent. Never retried."""

    retryable = False

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class TransportError(AgentServiceError):
    """Connection-level failure talking to the agent endpoint."""

    retryable = True


class AgentError(AgentServiceError):
    """Non-success HTTP response from the agent endpoint."""


class QueryTimeoutError(AgentServiceError):
    """The per-call deadline elapsed before the agent answered."""

    retryable = True

    def __init__(self, message: str, duration_ms: int, *, endpoint: str | None = None) -> None:
        self.duration_ms = duration_ms
        super().__init__(message, 408, endpoint=endpoint)
