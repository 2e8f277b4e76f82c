"""
Error taxonomy for the prompt relay.

Every failure the relay can produce is one of these types, so the boundary
layer can map them to transport-level responses without string matching.
"""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for all relay failures."""
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Client-safe representation of the error."""
        return {"error": self.message, "code": self.code}


class InvalidInput(RelayError):
    """Question is missing, not a string, blank, too long or malicious."""
    code = "INVALID_INPUT"


class QuotaExceeded(RelayError):
    """Session or IP is over its request or token ceiling.

    Retryable after ``wait_seconds``.
    """

    def __init__(
        self,
        kind: str,
        key: str,
        limit: str,
        current: int,
        maximum: int,
        reset_at: float,
        wait_seconds: int,
    ):
        if limit == "tokens":
            message = f"Token limit exceeded for this {kind}"
        else:
            message = f"Rate limit exceeded for this {kind}"
        super().__init__(message)
        self.kind = kind
        self.key = key
        self.limit = limit
        self.current = current
        self.maximum = maximum
        self.reset_at = reset_at
        self.wait_seconds = wait_seconds
        self.code = "TOKEN_LIMIT_EXCEEDED" if limit == "tokens" else "RATE_LIMIT_EXCEEDED"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({
            "current": self.current,
            "max": self.maximum,
            "reset_at": self.reset_at,
            "retry_after_seconds": self.wait_seconds,
        })
        return payload


class UpstreamError(RelayError):
    """Completion API answered with a non-success status or not at all."""
    code = "UPSTREAM_ERROR"

    def __init__(self, status_code: Optional[int], message: str, timed_out: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


class MalformedUpstreamResponse(RelayError):
    """Completion API succeeded but the completion text is missing."""
    code = "MALFORMED_UPSTREAM_RESPONSE"


class RelayFailed(RelayError):
    """Upstream call failed; ``cause`` holds the underlying error.

    The message is deliberately generic so upstream bodies never reach the
    client.
    """
    code = "CHAT_PROCESSING_ERROR"

    def __init__(self, cause: RelayError):
        super().__init__("Failed to process chat request")
        self.cause = cause
