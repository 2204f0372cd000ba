import logging
from typing import List

from fastapi import APIRouter

from cardsync.api.models.models import (
    AnomalyModel,
    BlockTextRequest,
    CardModel,
    CleanGeneratedRequest,
    CleanGeneratedResponse,
    DiffEntryModel,
    DiffRequest,
    DiffResponse,
    LocateRequest,
    LocateResponse,
    MergeRequest,
    MergeResponse,
    ParseResponse,
    PromptContextRequest,
    PromptContextResponse,
    SerializeRequest,
    SerializeResponse,
)
from cardsync.core.config import settings
from cardsync.core.error_handling import handle_exceptions
from cardsync.core.exceptions.domain import BlockNotFoundError
from cardsync.domain.cards.generated import append_generated_cards, clean_generated_text
from cardsync.domain.cards.locator import locate_block
from cardsync.domain.cards.models import DECK_PREFIX, ParseAnomaly
from cardsync.domain.cards.parser import parse_block
from cardsync.domain.cards.serializer import format_cards_for_prompt, render_fenced_block, serialize_block
from cardsync.domain.revision.differ import diff_cards, merge_revision, removed_remote_ids

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/blocks/parse", response_model=ParseResponse)
@handle_exceptions()
async def parse(request: BlockTextRequest) -> ParseResponse:
    """
    Parse the content of an anki-cards block.

    Fragments that are not cards are reported in ``anomalies`` instead of failing the request.
    """
    anomalies: List[ParseAnomaly] = []
    block = parse_block(request.text, anomalies)
    return ParseResponse(
        target_deck=block.target_deck,
        subdeck=block.subdeck(settings.main_deck),
        instruction=block.instruction,
        status=block.status,
        cards=[CardModel.from_card(card) for card in block.cards],
        anomalies=[AnomalyModel.from_anomaly(anomaly) for anomaly in anomalies],
    )


@router.post("/blocks/serialize", response_model=SerializeResponse)
@handle_exceptions()
async def serialize(request: SerializeRequest) -> SerializeResponse:
    text = serialize_block(
        f"{DECK_PREFIX} {request.deck}",
        [card.to_card() for card in request.cards],
        request.instruction,
        request.status,
    )
    return SerializeResponse(text=text, fenced=render_fenced_block(text))


@router.post("/blocks/locate", response_model=LocateResponse)
@handle_exceptions({BlockNotFoundError: (404, "Block not found")})
async def locate(request: LocateRequest) -> LocateResponse:
    """Find a block in a document by the content it had when it was last read."""
    location = locate_block(request.document, request.previous_source, request.position_hint)
    if location is None:
        raise BlockNotFoundError("request document")
    return LocateResponse(start=location.start, end=location.end, tier=location.tier.value, inner=location.inner)


@router.post("/blocks/prompt-context", response_model=PromptContextResponse)
@handle_exceptions()
async def prompt_context(request: PromptContextRequest) -> PromptContextResponse:
    return PromptContextResponse(context=format_cards_for_prompt([card.to_card() for card in request.cards]))


@router.post("/blocks/clean-generated", response_model=CleanGeneratedResponse)
@handle_exceptions()
async def clean_generated(request: CleanGeneratedRequest) -> CleanGeneratedResponse:
    cleaned = clean_generated_text(request.raw)
    block_text = None
    if request.block_text is not None:
        block_text = append_generated_cards(request.block_text, request.raw)
    return CleanGeneratedResponse(cleaned=cleaned, block_text=block_text)


@router.post("/revisions/diff", response_model=DiffResponse)
@handle_exceptions()
async def diff(request: DiffRequest) -> DiffResponse:
    """
    Compare a card list with its revised version.

    Returns:
        DiffResponse: Entries with their default resolution, indexed for merge requests
    """
    entries = diff_cards(
        [card.to_card() for card in request.old_cards],
        [card.to_card() for card in request.new_cards],
    )
    return DiffResponse(entries=[DiffEntryModel.from_entry(index, entry) for index, entry in enumerate(entries)])


@router.post("/revisions/merge", response_model=MergeResponse)
@handle_exceptions()
async def merge(request: MergeRequest) -> MergeResponse:
    """Apply per-entry resolutions and return the merged card list."""
    entries = diff_cards(
        [card.to_card() for card in request.old_cards],
        [card.to_card() for card in request.new_cards],
    )
    merged = merge_revision(entries, request.resolutions)
    return MergeResponse(
        cards=[CardModel.from_card(card) for card in merged],
        removed_remote_ids=removed_remote_ids(entries, request.resolutions),
    )
