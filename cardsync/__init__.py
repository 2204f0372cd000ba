from .domain.cards.locator import ensure_block, find_blocks, locate_block, replace_block
from .domain.cards.models import Block, Card, CardKind, ParseAnomaly
from .domain.cards.parser import parse_block, parse_cards
from .domain.cards.serializer import format_cards_for_prompt, serialize_block
from .domain.revision.differ import diff_cards, merge_revision

__all__ = [
    'Block',
    'Card',
    'CardKind',
    'ParseAnomaly',
    'parse_block',
    'parse_cards',
    'serialize_block',
    'format_cards_for_prompt',
    'locate_block',
    'find_blocks',
    'replace_block',
    'ensure_block',
    'diff_cards',
    'merge_revision',
]
