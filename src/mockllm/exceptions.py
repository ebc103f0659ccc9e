"""
Mock LLM Exceptions

Error types raised by the configuration loader and the server lifecycle.
Request-level failures never surface as exceptions; providers turn them into
HTTP responses.
"""


class MockLLMError(Exception):
    """Base class for all mock LLM errors."""


class ConfigError(MockLLMError):
    """Configuration file could not be read or parsed."""


class ServerStateError(MockLLMError):
    """Lifecycle operation is not valid in the server's current state."""


class HealthCheckError(MockLLMError):
    """A single health check did not report success."""


class ReadinessTimeoutError(MockLLMError):
    """Server did not become healthy within the retry budget."""


class RetryCancelledError(MockLLMError):
    """Retry loop observed cancellation before its next attempt."""


class ShutdownTimeoutError(MockLLMError):
    """In-flight requests did not drain before the shutdown deadline."""
