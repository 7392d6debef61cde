"""
Error types raised by the chat session core.

Every error carries a short machine-checkable ``kind`` and the HTTP status
code the API layer answers with.
"""


class ChatError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "chat_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidModelError(ChatError):
    kind = "invalid_model"
    status_code = 400


class SessionNotFoundError(ChatError):
    kind = "session_not_found"
    status_code = 404

    def __init__(self, message: str = "Chat session not found"):
        super().__init__(message)


class IdentityMismatchError(ChatError):
    kind = "identity_mismatch"
    status_code = 403

    def __init__(self, message: str = "IP address mismatch"):
        super().__init__(message)


class SessionExpiredError(ChatError):
    kind = "session_expired"
    status_code = 403

    def __init__(self, message: str = "Session expired"):
        super().__init__(message)


class AttachmentReadError(ChatError):
    kind = "attachment_read_error"
    status_code = 400

    def __init__(self, message: str = "Failed to process PDF file"):
        super().__init__(message)


class UpstreamError(ChatError):
    """Any failure reported by the Gemini service."""

    kind = "upstream_error"
    status_code = 502


class ContentBlockedError(UpstreamError):
    """The model refused to answer because of safety filtering."""

    kind = "content_blocked"


class UpstreamUnavailableError(UpstreamError):
    kind = "upstream_unavailable"
    status_code = 503


class UpstreamTimeoutError(UpstreamError):
    kind = "upstream_timeout"
    status_code = 504
