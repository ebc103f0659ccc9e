"""
Anthropic Messages Provider

Handles ``POST /v1/messages``. Requests must carry both ``x-api-key`` and
``anthropic-version``; only their presence is checked.
"""

from typing import Mapping, Optional

from fastapi import Response
from fastapi.responses import PlainTextResponse

from ..models import MessageRequest
from .base import ProviderHandler


class AnthropicProvider(ProviderHandler):
    """Anthropic-style handler."""

    name = "anthropic"
    request_model = MessageRequest

    def validate_headers(self, headers: Mapping[str, str]) -> Optional[Response]:
        if not headers.get('x-api-key'):
            return PlainTextResponse("Missing x-api-key header", status_code=401)

        if not headers.get('anthropic-version'):
            return PlainTextResponse("Missing anthropic-version header", status_code=400)

        return None
