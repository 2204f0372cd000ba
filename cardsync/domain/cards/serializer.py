from typing import List, Optional

from .models import (
    ANSWER_PREFIX,
    CLOZE_SEPARATOR,
    ID_PREFIX,
    INSTRUCTION_PREFIX,
    QUESTION_PREFIX,
    STATUS_PREFIX,
    Card,
    CardKind,
)

BLOCK_LANGUAGE = "anki-cards"
FENCE = "```"
EMPTY_PROMPT_CONTEXT = "Keine."


def _prefixed(prefix: str, text: str) -> List[str]:
    lines = text.split("\n")
    return [f"{prefix} {lines[0]}".rstrip()] + lines[1:]


def format_card(card: Card) -> str:
    """Render one card in block syntax."""
    if card.kind == CardKind.CLOZE:
        lines = card.question.split("\n") + [CLOZE_SEPARATOR]
        if card.answer:
            lines.extend(card.answer.split("\n"))
    else:
        # The A: line is emitted even for an empty answer
        lines = _prefixed(QUESTION_PREFIX, card.question) + _prefixed(ANSWER_PREFIX, card.answer)

    if card.remote_id is not None:
        lines.append(f"{ID_PREFIX} {card.remote_id}")
    return "\n".join(lines)


def format_cards(cards: List[Card]) -> str:
    """Render cards separated by exactly one blank line."""
    return "\n\n".join(format_card(card) for card in cards)


def serialize_block(
    deck_line: str,
    cards: List[Card],
    instruction: Optional[str] = None,
    status: Optional[str] = None,
) -> str:
    """
    Render the inner text of an anki-cards block.

    Args:
        deck_line (str): The ``TARGET DECK:`` line
        cards (List[Card]): Cards in display order
        instruction (Optional[str]): Value of the ``INSTRUCTION:`` line
        status (Optional[str]): Value of the ``STATUS:`` line

    Returns:
        str: Block content without the fence, trailing whitespace trimmed
    """
    lines = [deck_line.strip()]
    if instruction:
        lines.append(f"{INSTRUCTION_PREFIX} {instruction}")
    if status:
        lines.append(f"{STATUS_PREFIX} {status}")

    if cards:
        lines.append("")
        lines.append(format_cards(cards))

    return "\n".join(lines).rstrip()


def format_cards_for_prompt(cards: List[Card]) -> str:
    """Render the cards that already exist, as shown to a regenerating assistant."""
    if not cards:
        return EMPTY_PROMPT_CONTEXT
    return format_cards(cards)


def render_fenced_block(inner: str) -> str:
    return f"{FENCE}{BLOCK_LANGUAGE}\n{inner}\n{FENCE}"
