"""
Token counting helpers.

Uses tiktoken when available and the 4-characters-per-token heuristic
otherwise. Budget estimates always use the heuristic so that admission
decisions do not depend on which tokenizer is installed.
"""

from __future__ import annotations

import math
from collections.abc import Iterable


def estimate_tokens(text: str) -> int:
    """ceil(len(text) / 4), the estimate used for chunks and budgets."""
    return math.ceil(len(text) / 4)


def _count_with_tiktoken(text: str, model: str) -> int | None:
    """Count tokens using tiktoken, returning None if unavailable."""
    try:
        import tiktoken
    except ImportError:
        return None

    try:
        encoding = tiktoken.encoding_for_model(model)
    except KeyError:
        encoding = tiktoken.get_encoding("cl100k_base")

    return len(encoding.encode(text))


def count_text_tokens(text: str, model: str) -> int:
    """
    Count tokens for plain text when the provider did not report usage.

    Falls back to a char-based heuristic when tokenizer is unavailable.
    """
    tk_count = _count_with_tiktoken(text, model)
    if tk_count is not None:
        return tk_count
    return estimate_tokens(text)


def count_chat_tokens(messages: Iterable[str], model: str) -> int:
    """
    Count tokens for chat-style inputs.

    Adds a small fixed overhead per message for role/control tokens.
    """
    total = 0
    message_count = 0
    for message in messages:
        total += count_text_tokens(message, model)
        message_count += 1

    # Approximate role/message framing overhead.
    return total + (message_count * 4)
