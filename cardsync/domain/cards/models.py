from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

DECK_PREFIX = "TARGET DECK:"
INSTRUCTION_PREFIX = "INSTRUCTION:"
STATUS_PREFIX = "STATUS:"
METADATA_PREFIXES = (DECK_PREFIX, INSTRUCTION_PREFIX, STATUS_PREFIX)

QUESTION_PREFIX = "Q:"
ANSWER_PREFIX = "A:"
ID_PREFIX = "ID:"
CLOZE_SEPARATOR = "xxx"
BLANK_MARKER = "____"
DECK_SEPARATOR = "::"


class CardKind(Enum):
    BASIC = "Basic"
    CLOZE = "Cloze"


@dataclass
class Card:
    """Domain model representing a single flashcard inside a block."""

    kind: CardKind
    question: str
    answer: str = ""
    remote_id: Optional[int] = None
    is_typed_recall: bool = False

    @property
    def is_synchronized(self) -> bool:
        return self.remote_id is not None

    def with_remote_id(self, remote_id: Optional[int]) -> "Card":
        """Return a copy bound to another remote note."""
        return replace(self, remote_id=remote_id)


@dataclass
class Block:
    """An anki-cards block as read from a document.

    Built fresh on every read; the document text stays the source of truth.
    """

    target_deck: Optional[str] = None
    instruction: Optional[str] = None
    status: Optional[str] = None
    cards: List[Card] = field(default_factory=list)
    raw_source: str = ""

    @property
    def deck_line(self) -> str:
        return f"{DECK_PREFIX} {self.target_deck or ''}".strip()

    @property
    def synchronized_count(self) -> int:
        return sum(1 for card in self.cards if card.is_synchronized)

    def subdeck(self, main_deck: str) -> str:
        """Return the deck path below ``main_deck``, or an empty string."""
        prefix = f"{main_deck}{DECK_SEPARATOR}"
        if self.target_deck and self.target_deck.startswith(prefix):
            return self.target_deck[len(prefix) :]
        return ""


@dataclass(frozen=True)
class ParseAnomaly:
    """A fragment the parser dropped or could not fully interpret."""

    line_number: int
    reason: str
    text: str = ""
