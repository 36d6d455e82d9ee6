"""
Exception hierarchy for ChatHub.
"""


class ChatHubError(Exception):
    """Base exception for all ChatHub errors."""

    pass


class NotFoundError(ChatHubError):
    """Raised when a channel, conversation, assistant or binding does not exist."""

    pass


class ConfigurationError(ChatHubError):
    """Raised when channel settings or a collaborator are misconfigured."""

    pass


class TransientProviderError(ChatHubError):
    """Raised for failures that may succeed when retried."""

    pass


class RateLimitError(TransientProviderError):
    """Raised when a channel or provider API rejects a call for rate limiting."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ChannelSendError(ChatHubError):
    """Raised when a channel API rejects an outbound message."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GenerationTimeout(ChatHubError):
    """Raised when a run does not finish within its poll budget."""

    pass


class ToolCallError(ChatHubError):
    """Raised by a function processor when a tool call cannot be executed."""

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name
