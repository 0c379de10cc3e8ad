"""Application-level exception types for Chatkin."""

from __future__ import annotations


class ChatkinError(Exception):
    """Base exception for Chatkin."""


class ConfigurationError(ChatkinError):
    """Base exception for configuration and startup validation errors."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when the model provider API key is missing."""


class StoreNotConfiguredError(ConfigurationError):
    """Raised when the workspace datastore URL or key is missing."""


class OrchestratorError(ChatkinError):
    """Base exception for fatal tool-loop failures."""


class ProviderError(OrchestratorError):
    """Raised when the model provider call itself fails."""


class ToolLoopExhaustedError(OrchestratorError):
    """Raised when the model keeps calling tools past the iteration cap."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            "The AI made too many tool calls. "
            "Please try rephrasing your request or breaking it into smaller questions."
        )
        self.max_iterations = max_iterations


class UnexpectedStopReasonError(OrchestratorError):
    """Raised when the provider stops for a reason the loop does not handle."""

    def __init__(self, stop_reason: str | None) -> None:
        super().__init__(f"Unexpected stop reason: {stop_reason}")
        self.stop_reason = stop_reason


class StoreError(ChatkinError):
    """Raised when a workspace datastore request fails."""

    def __init__(self, message: str, *, status_code: int | None = None, details: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ImageFetchError(ChatkinError):
    """Raised when an image attachment cannot be loaded."""
