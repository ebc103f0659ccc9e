"""
Mock LLM Data Models

Provider message and request shapes, validated with pydantic.

Both provider families share the same message layout: a role plus content that
is either a plain string or an ordered list of typed parts. Fields the models
don't name are kept (``extra='allow'``) so that exact matching and the
unmatched-request echo see everything the client sent.
"""

import json
from typing import List, Dict, Any, Optional, Union

from pydantic import BaseModel, ConfigDict


class MatchType:
    """Supported expectation match types."""

    EXACT = "exact"
    CONTAINS = "contains"


class ContentPart(BaseModel):
    """One typed part of a message's content (text, image, tool_use, ...)."""

    model_config = ConfigDict(extra='allow')

    type: str
    text: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.type == "text" and self.text is not None


class Message(BaseModel):
    """A single chat message."""

    model_config = ConfigDict(extra='allow')

    role: str
    content: Optional[Union[str, List[ContentPart]]] = None

    def parts_count(self) -> int:
        """Number of content parts; plain string content counts as one."""
        if self.content is None:
            return 0
        if isinstance(self.content, str):
            return 1
        return len(self.content)

    def text_parts(self) -> List[str]:
        """
        Text of every text-typed content part, in order.

        Non-text parts are skipped. Plain string content is a single text part.
        """
        if self.content is None:
            return []
        if isinstance(self.content, str):
            return [self.content]
        return [part.text for part in self.content if part.is_text]


class ChatCompletionRequest(BaseModel):
    """OpenAI-style ``POST /v1/chat/completions`` request body."""

    model_config = ConfigDict(extra='allow')

    model: Optional[str] = None
    messages: List[Message]


class MessageRequest(BaseModel):
    """Anthropic-style ``POST /v1/messages`` request body."""

    model_config = ConfigDict(extra='allow')

    model: Optional[str] = None
    max_tokens: Optional[int] = None
    system: Optional[Union[str, List[ContentPart]]] = None
    messages: List[Message]


class RequestMatch(BaseModel):
    """Pattern half of an expectation: how to compare and what to compare with."""

    match_type: str = MatchType.EXACT
    message: Message


def canonical_dict(model: BaseModel) -> Dict[str, Any]:
    """Dump a model to plain JSON-compatible data, dropping unset optionals."""
    return model.model_dump(mode='json', exclude_none=True)


def canonical_json(model: BaseModel) -> str:
    """
    Deterministic JSON encoding of a model.

    Keys are sorted and separators are compact, so two structurally equal
    values always produce identical strings regardless of input field order
    or whitespace.
    """
    return json.dumps(canonical_dict(model), sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def pretty_json(model: BaseModel) -> str:
    """Indented, key-sorted JSON for diagnostics."""
    return json.dumps(canonical_dict(model), sort_keys=True, indent=2, ensure_ascii=False)
