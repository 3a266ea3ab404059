from __future__ import annotations

import logging
import re
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_DENYLIST: tuple[str, ...] = (
    "ignore previous instructions",
    "ignore all previous instructions",
    "disregard the system prompt",
    "system:",
    "<script",
)


class PromptRejected(ValueError):
    pass


def validate_prompt(text: str, max_chars: int) -> str:
    prompt = text.strip()
    if not prompt:
        raise PromptRejected("prompt must not be empty")
    if len(prompt) > max_chars:
        raise PromptRejected(f"prompt must be at most {max_chars} characters")
    return prompt


def strip_suspicious_substrings(text: str, denylist: Iterable[str] = DEFAULT_DENYLIST) -> str:
    """
    Remove denylisted phrases (case-insensitive) until none remain.

    WARNING: this is a weak denylist filter, not a security control. It is
    trivially bypassed by alternate encodings, extra whitespace, homoglyphs or
    rephrasing. Treat its output as untrusted input just like the original.
    """
    patterns = [re.compile(re.escape(p), re.IGNORECASE) for p in denylist if p]
    if not patterns:
        return text

    result = text
    while True:
        stripped = result
        for pattern in patterns:
            stripped = pattern.sub("", stripped)
        if stripped == result:
            break
        result = stripped

    if result != text:
        logger.info("Removed denylisted substrings from prompt removed_chars=%d", len(text) - len(result))

    return result
