"""Error taxonomy for the news chat service.

- QueryValidationError: the caller sent a blank query (HTTP 400, never retried)
- UpstreamUnavailableError: Redis, Milvus or OpenAI failed; recovered locally
- HistorySerializationError: stored history is not a valid turn list
- ConfigurationError: missing credentials or index/embedding mismatch (fatal at startup)
"""


class NewslineError(Exception):
    """Base class for service errors."""


class QueryValidationError(NewslineError):
    """Raised when a chat query is missing or blank."""


class UpstreamUnavailableError(NewslineError):
    """Raised when an external collaborator cannot be reached or misbehaves.

    ``retryable`` marks failures worth another attempt (5xx, 429).
    """

    def __init__(self, service: str, message: str, retryable: bool = False):
        self.service = service
        self.retryable = retryable
        super().__init__(f"{service}: {message}")


class HistorySerializationError(NewslineError):
    """Raised when a stored history blob cannot be decoded."""


class ConfigurationError(NewslineError):
    """Raised for configuration problems that must stop the service."""
