"""
Mock LLM

Mock HTTP server impersonating the OpenAI chat completions and Anthropic
messages APIs for integration tests.

This package provides:
- FastAPI-based mock server with a start/stop lifecycle
- Exact and substring request matching against the last message
- JSON/YAML configuration loading
- Exponential backoff retry helper
"""

from .server import MockLLMServer, ServerState, create_mock_server
from .config import Config, ConfigLoader, MockExpectation, load_config_from_file
from .models import MatchType, Message, ContentPart, RequestMatch
from .matcher import requests_match
from .retry import retry_with_backoff
from .exceptions import (
    MockLLMError,
    ConfigError,
    ServerStateError,
    HealthCheckError,
    ReadinessTimeoutError,
    RetryCancelledError,
    ShutdownTimeoutError
)

__all__ = [
    'MockLLMServer',
    'ServerState',
    'create_mock_server',
    'Config',
    'ConfigLoader',
    'MockExpectation',
    'load_config_from_file',
    'MatchType',
    'Message',
    'ContentPart',
    'RequestMatch',
    'requests_match',
    'retry_with_backoff',
    'MockLLMError',
    'ConfigError',
    'ServerStateError',
    'HealthCheckError',
    'ReadinessTimeoutError',
    'RetryCancelledError',
    'ShutdownTimeoutError'
]
