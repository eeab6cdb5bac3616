"""Package specific exception hierarchy."""


class ChatRelayError(Exception):
    """Base exception for chat_relay package."""


class ValidationFailure(ChatRelayError):
    """Raised when a request body is missing or malformed."""


class UpstreamFailure(ChatRelayError):
    """Raised when the model provider call fails outright."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        suffix = f" (status {status_code})" if status_code is not None else ""
        super().__init__(f"{provider}: {message}{suffix}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


# Name used by the non-streaming invoker contract.
ChatFailure = UpstreamFailure


class ProviderError(UpstreamFailure):
    """Represents provider-specific HTTP or API errors."""


class UnsupportedProviderError(ChatRelayError):
    """Raised when a provider has not been configured."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider '{provider}' is not available.")


class ContextRetrievalFailure(ChatRelayError):
    """Raised by context sources; always recovered by the augmenter."""
