"""
Mock LLM Providers

One handler per impersonated API surface.
"""

from .base import ProviderHandler
from .openai import OpenAIProvider
from .anthropic import AnthropicProvider

__all__ = [
    'ProviderHandler',
    'OpenAIProvider',
    'AnthropicProvider'
]
