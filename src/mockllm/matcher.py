"""
Mock LLM Request Matcher

Decides whether a configured expectation matches an incoming request.

Only the last message of the incoming request is considered. Two match types
are supported:

- exact: the canonical JSON of the expected message equals the canonical JSON
  of the last message
- contains: the roles are equal and one of the last message's text parts
  contains the expected text as a case-sensitive substring

A ``contains`` expectation must carry exactly one text part. Any other shape
never matches; it is not treated as an error.
"""

import logging
from typing import Sequence

from .models import Message, MatchType, RequestMatch, canonical_json

logger = logging.getLogger(__name__)


def requests_match(expected: RequestMatch, messages: Sequence[Message]) -> bool:
    """
    Check whether an expectation matches a request's messages.

    Args:
        expected: Configured match type and message
        messages: Messages of the incoming request, in order

    Returns:
        True if the expectation matches the last message
    """
    if not messages:
        return False

    last_message = messages[-1]

    try:
        if expected.match_type == MatchType.EXACT:
            return _exact_match(expected.message, last_message)
        if expected.match_type == MatchType.CONTAINS:
            return _contains_match(expected.message, last_message)
    except (TypeError, ValueError) as e:
        logger.debug(f"Treating unserializable message as no match: {e}")
        return False

    return False


def _exact_match(expected: Message, actual: Message) -> bool:
    """Structural equality of the two messages' canonical encodings."""
    return canonical_json(expected) == canonical_json(actual)


def _contains_match(expected: Message, actual: Message) -> bool:
    """Role equality plus substring search over the actual text parts."""
    expected_texts = expected.text_parts()
    if expected.parts_count() != 1 or len(expected_texts) != 1:
        return False

    if actual.role != expected.role:
        return False

    needle = expected_texts[0]
    return any(needle in text for text in actual.text_parts())
