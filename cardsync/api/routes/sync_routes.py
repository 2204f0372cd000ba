import logging

from fastapi import APIRouter, Depends

from cardsync.api.models.models import (
    AnomalyModel,
    CardModel,
    DeckCountResponse,
    SyncCardsRequest,
    SyncCardsResponse,
    SyncFileRequest,
    SyncFileResponse,
)
from cardsync.core.container import DependencyContainer, get_media_resolver, get_note_store, get_sync_service
from cardsync.core.error_handling import handle_exceptions
from cardsync.core.exceptions.domain import BlockNotFoundError
from cardsync.domain.sync.service import BlockSyncService
from cardsync.repositories.note_store import NoteStoreInterface

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sync/cards", response_model=SyncCardsResponse)
@handle_exceptions()
async def sync_cards(
    request: SyncCardsRequest,
    note_store: NoteStoreInterface = Depends(get_note_store),
) -> SyncCardsResponse:
    """
    Reconcile a list of cards into a deck.

    Args:
        request (SyncCardsRequest): Deck and cards
        note_store (NoteStoreInterface): Remote note store

    Returns:
        SyncCardsResponse: Cards with remote IDs, in request order minus skipped cards
    """
    reconciler = DependencyContainer.create_reconciler(note_store, request.source_path)
    cards = await reconciler.reconcile(
        request.deck,
        [card.to_card() for card in request.cards],
        get_media_resolver(request.source_path),
    )
    return SyncCardsResponse(
        deck=request.deck,
        cards=[CardModel.from_card(card) for card in cards],
        created=reconciler.stats.created,
        updated=reconciler.stats.updated,
        skipped=reconciler.stats.skipped,
    )


@router.post("/sync/file", response_model=SyncFileResponse)
@handle_exceptions({BlockNotFoundError: (404, "Block not found")})
async def sync_file(
    request: SyncFileRequest,
    service: BlockSyncService = Depends(get_sync_service),
) -> SyncFileResponse:
    """Synchronize one block of a vault document and write the remote IDs back into it."""
    report = await service.sync_block(
        request.path,
        request.previous_source,
        get_media_resolver(request.path),
        position_hint=request.position_hint,
    )
    return SyncFileResponse(
        document=report.document,
        deck=report.deck,
        cards=[CardModel.from_card(card) for card in report.cards],
        created=report.created,
        updated=report.updated,
        skipped=report.skipped,
        tier=report.tier.value if report.tier else None,
        anomalies=[AnomalyModel.from_anomaly(anomaly) for anomaly in report.anomalies],
    )


@router.get("/decks/{deck}/count", response_model=DeckCountResponse)
@handle_exceptions()
async def deck_count(deck: str, note_store: NoteStoreInterface = Depends(get_note_store)) -> DeckCountResponse:
    return DeckCountResponse(deck=deck, count=await note_store.count_cards_in_deck(deck))
