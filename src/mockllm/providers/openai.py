"""
OpenAI Chat Completions Provider

Handles ``POST /v1/chat/completions``.
"""

from typing import Mapping, Optional, Sequence

from fastapi import Response
from fastapi.responses import PlainTextResponse

from ..config import MockExpectation
from ..models import ChatCompletionRequest
from .base import ProviderHandler


class OpenAIProvider(ProviderHandler):
    """
    OpenAI-style handler.

    Authentication is not checked unless ``require_auth`` is set, in which
    case a missing Authorization header is rejected with 401.
    """

    name = "openai"
    request_model = ChatCompletionRequest

    def __init__(self, mocks: Sequence[MockExpectation], require_auth: bool = False):
        super().__init__(mocks)
        self.require_auth = require_auth

    def validate_headers(self, headers: Mapping[str, str]) -> Optional[Response]:
        if self.require_auth and not headers.get('authorization'):
            return PlainTextResponse("Missing Authorization header", status_code=401)
        return None
