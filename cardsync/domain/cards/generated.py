"""Cleanup of card text produced by a text generator before it enters a block."""

import logging
from typing import List

from .models import ANSWER_PREFIX, BLANK_MARKER, CLOZE_SEPARATOR, ID_PREFIX, QUESTION_PREFIX
from .parser import normalize_newlines

logger = logging.getLogger(__name__)

CHATTER_PREFIXES = (
    "here are the anki cards",
    "note that i've only created cards",
    "target deck:",
)


def _is_card_line(line: str) -> bool:
    stripped = line.strip()
    return (
        stripped.startswith((QUESTION_PREFIX, ANSWER_PREFIX, ID_PREFIX))
        or stripped == CLOZE_SEPARATOR
        or BLANK_MARKER in line
    )


def clean_generated_text(raw: str) -> str:
    """
    Keep only the card syntax of generated text.

    Nested code fences are removed together with their content, and so are
    conversational lines and anything that is neither a card line nor a
    continuation of one. Runs of blank lines collapse into one.
    """
    kept: List[str] = []
    inside_fence = False
    in_card = False

    for line in normalize_newlines(raw or "").strip().split("\n"):
        stripped = line.strip()

        if stripped.startswith("```"):
            inside_fence = not inside_fence
            continue
        if inside_fence:
            continue

        if not stripped:
            in_card = False
            if kept and kept[-1].strip():
                kept.append("")
            continue

        if stripped.lower().startswith(CHATTER_PREFIXES):
            continue

        if _is_card_line(line) or in_card:
            kept.append(line.rstrip())
            in_card = True
        else:
            logger.debug(f"Ignoring generated line: {stripped[:80]}")

    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept)


def append_generated_cards(inner: str, generated: str) -> str:
    """Append cleaned generated cards to the inner text of a block."""
    cleaned = clean_generated_text(generated)
    existing = normalize_newlines(inner or "").rstrip()
    if not cleaned:
        return existing
    if not existing:
        return cleaned
    return f"{existing}\n\n{cleaned}"
