"""
Mock LLM Provider Base

Shared request handling for provider families: header checks, body parsing,
first-match-wins lookup and response encoding.
"""

import json
import logging
from typing import List, Mapping, Optional, Sequence, Tuple, Type

from fastapi import Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ValidationError

from ..config import MockExpectation
from ..matcher import requests_match
from ..models import Message, pretty_json


class ProviderHandler:
    """
    Serves canned responses for one provider family.

    The expectation list is fixed at construction and only read afterwards,
    so one handler can serve concurrent requests without locking.

    Subclasses set ``name`` and ``request_model`` and override
    ``validate_headers`` for their required headers.
    """

    name: str = "provider"
    request_model: Type[BaseModel] = BaseModel

    def __init__(self, mocks: Sequence[MockExpectation]):
        self.mocks: Tuple[MockExpectation, ...] = tuple(mocks)
        self.logger = logging.getLogger(f"mockllm.providers.{self.name}")

    @property
    def mock_count(self) -> int:
        return len(self.mocks)

    def validate_headers(self, headers: Mapping[str, str]) -> Optional[Response]:
        """
        Check provider-required headers.

        Returns:
            Error response if a required header is missing, otherwise None
        """
        return None

    def find_matching_mock(self, messages: List[Message]) -> Optional[MockExpectation]:
        """Return the first configured expectation that matches, in configured order."""
        for mock in self.mocks:
            if requests_match(mock.match, messages):
                return mock
        return None

    def handle(self, headers: Mapping[str, str], body: bytes) -> Response:
        """
        Handle one provider request.

        Header checks run before the body is parsed.

        Args:
            headers: Request headers (case-insensitive mapping)
            body: Raw request body

        Returns:
            200 with the matched canned response, or a 4xx/5xx diagnostic
        """
        error_response = self.validate_headers(headers)
        if error_response is not None:
            return error_response

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return PlainTextResponse(f"Invalid JSON: {e}", status_code=400)

        try:
            request = self.request_model.model_validate(payload)
        except ValidationError as e:
            return PlainTextResponse(f"Invalid request: {e}", status_code=400)

        self.logger.debug(f"Incoming {self.name} request with {len(request.messages)} message(s)")

        mock = self.find_matching_mock(request.messages)
        if mock is None:
            return self._no_match_response(request)

        self.logger.info(f"Matched {self.name} mock '{mock.name}'")
        return self._json_response(mock.response)

    def _no_match_response(self, request: BaseModel) -> Response:
        """404 echoing the parsed request so misconfigured tests can be diagnosed."""
        try:
            request_json = pretty_json(request)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Failed to encode {self.name} request body: {e}")
            return PlainTextResponse(f"Failed to encode request body: {e}", status_code=500)

        self.logger.warning(f"No matching {self.name} mock found")
        return PlainTextResponse(f"No matching mock found. Request: {request_json}", status_code=404)

    def _json_response(self, content) -> Response:
        try:
            body = json.dumps(content)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Failed to encode {self.name} response: {e}")
            return PlainTextResponse(f"Failed to encode response: {e}", status_code=500)

        return Response(content=body, status_code=200, media_type="application/json")
