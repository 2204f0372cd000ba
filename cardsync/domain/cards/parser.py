"""Parser for the line-oriented anki-cards block grammar.

The grammar is hand-edited, so parsing never raises: fragments that cannot
be read as a card are dropped and reported as :class:`ParseAnomaly` records
(and logged at WARNING).

Basic cards::

    Q: question line 1
    question line 2
    A: answer line 1
    answer line 2
    ID: 1234

Cloze cards::

    The capital of France is ____.
    xxx
    Paris
    ID: 5678
"""

import logging
from typing import List, Optional

from .models import (
    ANSWER_PREFIX,
    BLANK_MARKER,
    CLOZE_SEPARATOR,
    DECK_PREFIX,
    ID_PREFIX,
    INSTRUCTION_PREFIX,
    METADATA_PREFIXES,
    QUESTION_PREFIX,
    STATUS_PREFIX,
    Block,
    Card,
    CardKind,
    ParseAnomaly,
)

logger = logging.getLogger(__name__)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _is_metadata(line: str) -> bool:
    return line.lstrip().startswith(METADATA_PREFIXES)


def _is_blank(line: str) -> bool:
    return not line.strip()


def _join(lines: List[str]) -> str:
    """Join field lines, dropping trailing blank lines."""
    end = len(lines)
    while end > 0 and _is_blank(lines[end - 1]):
        end -= 1
    return "\n".join(lines[:end])


class _CardScanner:
    """Single-use cursor over the lines of one block."""

    def __init__(self, text: str, anomalies: List[ParseAnomaly]):
        self.lines = normalize_newlines(text).split("\n")
        self.anomalies = anomalies
        self.pos = 0

    def scan(self) -> List[Card]:
        cards: List[Card] = []

        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            stripped = line.strip()

            if not stripped or _is_metadata(line):
                self.pos += 1
            elif stripped.startswith(QUESTION_PREFIX):
                cards.append(self._read_basic())
            elif stripped.startswith((ANSWER_PREFIX, ID_PREFIX)) or stripped == CLOZE_SEPARATOR:
                self._anomaly(self.pos, "line outside of a card", line)
                self.pos += 1
            else:
                card = self._read_cloze()
                if card is not None:
                    cards.append(card)

        for card in cards:
            card.answer = card.answer.strip()
        return cards

    def _current(self) -> Optional[str]:
        if self.pos < len(self.lines):
            return self.lines[self.pos]
        return None

    def _read_basic(self) -> Card:
        first_question = self.lines[self.pos].strip()[len(QUESTION_PREFIX) :].strip()
        self.pos += 1
        question_lines = [first_question] + self._collect(stop_on_answer=True)

        answer = ""
        current = self._current()
        if current is not None and current.lstrip().startswith(ANSWER_PREFIX):
            first_answer = current.strip()[len(ANSWER_PREFIX) :].strip()
            self.pos += 1
            answer = _join([first_answer] + self._collect(stop_on_answer=False))

        return Card(
            kind=CardKind.BASIC,
            question=_join(question_lines),
            answer=answer,
            remote_id=self._read_id(),
        )

    def _read_cloze(self) -> Optional[Card]:
        start = self.pos
        question_lines = [self.lines[self.pos]]
        self.pos += 1
        has_separator = False

        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            stripped = line.strip()
            if stripped == CLOZE_SEPARATOR:
                has_separator = True
                self.pos += 1
                break
            if not stripped and BLANK_MARKER not in "\n".join(question_lines) and self._cloze_marker_ahead():
                question_lines.append(line)
                self.pos += 1
                continue
            if not stripped or stripped.startswith((QUESTION_PREFIX, ID_PREFIX)) or _is_metadata(line):
                break
            question_lines.append(line)
            self.pos += 1

        answer = _join(self._collect(stop_on_answer=False)) if has_separator else ""
        remote_id = self._read_id()
        question = _join(question_lines)

        if has_separator or BLANK_MARKER in question:
            return Card(kind=CardKind.CLOZE, question=question, answer=answer, remote_id=remote_id)

        self._anomaly(start, "text without cloze marker ignored", question_lines[0])
        return None

    def _cloze_marker_ahead(self) -> bool:
        """Whether the paragraph after the blank lines at the cursor continues a cloze question."""
        index = self.pos
        while index < len(self.lines) and _is_blank(self.lines[index]):
            index += 1

        while index < len(self.lines):
            line = self.lines[index]
            stripped = line.strip()
            if not stripped or stripped.startswith((QUESTION_PREFIX, ID_PREFIX)) or _is_metadata(line):
                return False
            if stripped == CLOZE_SEPARATOR or BLANK_MARKER in line:
                return True
            index += 1
        return False

    def _collect(self, stop_on_answer: bool) -> List[str]:
        """Collect continuation lines, leaving the cursor on the line that stopped collection."""
        collected: List[str] = []

        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            stripped = line.lstrip()

            if stripped.startswith((QUESTION_PREFIX, ID_PREFIX)) or _is_metadata(line):
                break
            if stop_on_answer and stripped.startswith(ANSWER_PREFIX):
                break
            if line.strip() == CLOZE_SEPARATOR:
                self._hand_back(collected, at_separator=True)
                break
            if BLANK_MARKER in line:
                self._hand_back(collected, at_separator=False)
                break

            collected.append(line)
            self.pos += 1

        return collected

    def _hand_back(self, collected: List[str], at_separator: bool) -> None:
        """Return the lines that belong to the following cloze card to the cursor.

        Everything after the last collected blank line starts the cloze card.
        Without a blank line the separator claims only the line right above it,
        and a blank-marker line starts the cloze card on its own.
        """
        blank_indexes = [i for i, line in enumerate(collected) if _is_blank(line)]
        if blank_indexes:
            count = len(collected) - blank_indexes[-1] - 1
        elif at_separator:
            count = min(1, len(collected))
        else:
            count = 0

        if count:
            del collected[-count:]
            self.pos -= count

    def _read_id(self) -> Optional[int]:
        current = self._current()
        if current is None or not current.lstrip().startswith(ID_PREFIX):
            return None

        line_number = self.pos
        self.pos += 1
        value = current.strip()[len(ID_PREFIX) :].strip()
        try:
            return int(value)
        except ValueError:
            self._anomaly(line_number, "ID is not an integer", current)
            return None

    def _anomaly(self, index: int, reason: str, text: str) -> None:
        anomaly = ParseAnomaly(line_number=index + 1, reason=reason, text=text)
        self.anomalies.append(anomaly)
        logger.warning(
            f"Dropped block fragment at line {anomaly.line_number}: {reason}",
            extra={"details": {"line": anomaly.line_number, "text": text[:80]}},
        )


def parse_cards(block_text: str, anomalies: Optional[List[ParseAnomaly]] = None) -> List[Card]:
    """
    Parse the inner text of an anki-cards block into cards.

    Args:
        block_text (str): Block content without the surrounding fence
        anomalies (Optional[List[ParseAnomaly]]): Receives dropped fragments

    Returns:
        List[Card]: Cards in block order
    """
    if not block_text:
        return []
    sink = anomalies if anomalies is not None else []
    return _CardScanner(block_text, sink).scan()


def _metadata_value(lines: List[str], prefix: str) -> Optional[str]:
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(prefix):
            return stripped[len(prefix) :].strip()
    return None


def parse_block(block_text: str, anomalies: Optional[List[ParseAnomaly]] = None) -> Block:
    """
    Parse block metadata and cards.

    Args:
        block_text (str): Block content without the surrounding fence
        anomalies (Optional[List[ParseAnomaly]]): Receives dropped fragments

    Returns:
        Block: Deck, instruction, status and cards of the block
    """
    lines = normalize_newlines(block_text or "").split("\n")
    return Block(
        target_deck=_metadata_value(lines, DECK_PREFIX) or None,
        instruction=_metadata_value(lines, INSTRUCTION_PREFIX),
        status=_metadata_value(lines, STATUS_PREFIX),
        cards=parse_cards(block_text, anomalies),
        raw_source=block_text or "",
    )
