"""Find a specific anki-cards block inside a document.

A document may hold several blocks behind the same fence, and positions
shift while the user edits, so a block is re-found by the text it had when
it was last read. Matching runs in tiers of descending confidence:

1. inner content equal after normalizing line endings
2. inner content equal after also trimming surrounding whitespace
3. the last block of the document (logged as a warning)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .models import DECK_PREFIX
from .parser import normalize_newlines
from .serializer import render_fenced_block

logger = logging.getLogger(__name__)

BLOCK_PATTERN = re.compile(
    r"^```anki-cards[^\S\r\n]*\r?\n(?:(?P<inner>.*?)\r?\n)?```[^\S\r\n]*(?=\r?$)",
    re.MULTILINE | re.DOTALL,
)

NEW_BLOCK_HEADING = "## Anki"


class MatchTier(Enum):
    EXACT = "exact"
    TRIMMED = "trimmed"
    FALLBACK_LAST = "fallback_last"


@dataclass(frozen=True)
class BlockLocation:
    """Offsets of a fenced block, fence included."""

    start: int
    end: int
    text: str
    inner: str
    tier: Optional[MatchTier] = None


def find_blocks(document: str) -> List[BlockLocation]:
    """Return every fenced block of the document in order."""
    return [
        BlockLocation(start=match.start(), end=match.end(), text=match.group(0), inner=match.group("inner") or "")
        for match in BLOCK_PATTERN.finditer(document)
    ]


def _pick(candidates: List[BlockLocation], position_hint: Optional[int]) -> BlockLocation:
    if position_hint is None:
        return candidates[-1]
    return min(candidates, key=lambda location: abs(location.start - position_hint))


def locate_block(
    document: str,
    previous_source: str,
    position_hint: Optional[int] = None,
) -> Optional[BlockLocation]:
    """
    Find the block that was previously read as ``previous_source``.

    Args:
        document (str): Full document text
        previous_source (str): Inner block text as it was last read
        position_hint (Optional[int]): Offset used to choose between equally good matches;
            without it the last match wins

    Returns:
        Optional[BlockLocation]: The matched block with its tier, or None when the
            document holds no block at all
    """
    candidates = find_blocks(document)
    if not candidates:
        return None

    wanted = normalize_newlines(previous_source or "")
    tiers: List[Tuple[MatchTier, Callable[[str], str]]] = [
        (MatchTier.EXACT, normalize_newlines),
        (MatchTier.TRIMMED, lambda text: normalize_newlines(text).strip()),
    ]

    for tier, normalize in tiers:
        target = normalize(wanted)
        matches = [candidate for candidate in candidates if normalize(candidate.inner) == target]
        if matches:
            chosen = _pick(matches, position_hint)
            return BlockLocation(chosen.start, chosen.end, chosen.text, chosen.inner, tier)

    fallback = candidates[-1]
    logger.warning(
        "Block not matched by content, using the last block of the document",
        extra={"details": {"candidates": len(candidates), "offset": fallback.start}},
    )
    return BlockLocation(fallback.start, fallback.end, fallback.text, fallback.inner, MatchTier.FALLBACK_LAST)


def replace_block(document: str, location: BlockLocation, inner: str) -> str:
    """Replace exactly the located fenced block with a new block holding ``inner``.

    The new block uses the line endings of the block it replaces.
    """
    block = render_fenced_block(normalize_newlines(inner))
    if "\r\n" in location.text:
        block = block.replace("\n", "\r\n")
    return document[: location.start] + block + document[location.end :]


def ensure_block(document: str, deck_path: str) -> Tuple[str, BlockLocation]:
    """
    Make sure the document ends with a block targeting ``deck_path``.

    A document without blocks gets a heading and an empty block appended. When the
    last block targets another deck its deck line is rewritten and the rest kept.

    Returns:
        Tuple[str, BlockLocation]: Updated document and the location of the block
    """
    deck_line = f"{DECK_PREFIX} {deck_path}"
    blocks = find_blocks(document)

    if not blocks:
        logger.info(f"No anki-cards block found, appending one for {deck_path}")
        document = f"{document}\n\n{NEW_BLOCK_HEADING}\n\n{render_fenced_block(deck_line)}"
        return document, find_blocks(document)[-1]

    last = blocks[-1]
    lines = normalize_newlines(last.inner).strip().split("\n")
    current = next((line for line in lines if line.strip().startswith(DECK_PREFIX)), None)
    if current is not None and current.replace(DECK_PREFIX, "", 1).strip() == deck_path:
        return document, last

    kept = [line for line in lines if not line.strip().startswith(DECK_PREFIX)]
    inner = deck_line
    if any(line.strip() for line in kept):
        inner += "\n\n" + "\n".join(kept).strip()

    document = replace_block(document, last, inner)
    return document, find_blocks(document)[-1]
