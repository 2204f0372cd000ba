import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from cardsync.core.exceptions.base import ValidationError
from cardsync.core.exceptions.domain import BlockNotFoundError
from cardsync.domain.cards.locator import BlockLocation, MatchTier, locate_block, replace_block
from cardsync.domain.cards.models import DECK_PREFIX, Block, Card, ParseAnomaly
from cardsync.domain.cards.parser import parse_block, parse_cards
from cardsync.domain.cards.serializer import serialize_block
from cardsync.domain.revision.differ import DiffEntry, Side, diff_cards, merge_revision
from cardsync.repositories.document_repository import DocumentRepositoryInterface
from cardsync.repositories.note_store import NoteStoreInterface

from .media import MediaResolver
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

ReconcilerFactory = Callable[[Optional[str]], Reconciler]


@dataclass
class SyncReport:
    document: str
    deck: str
    cards: List[Card]
    created: int = 0
    updated: int = 0
    skipped: int = 0
    tier: Optional[MatchTier] = None
    anomalies: List[ParseAnomaly] = field(default_factory=list)


@dataclass
class RevisionResult:
    document: str
    entries: List[DiffEntry]
    cards: List[Card]


class BlockSyncService:
    """Reads a document once, synchronizes one block and writes the document back once."""

    def __init__(
        self,
        reconciler_factory: ReconcilerFactory,
        note_store: NoteStoreInterface,
        documents: DocumentRepositoryInterface,
    ):
        self.reconciler_factory = reconciler_factory
        self.note_store = note_store
        self.documents = documents

    async def _load(
        self, path: str, previous_source: str, position_hint: Optional[int] = None
    ) -> Tuple[str, BlockLocation]:
        text = await self.documents.read_text(path)
        return text, locate_or_raise(text, previous_source, path, position_hint)

    async def sync_block(
        self,
        path: str,
        previous_source: str,
        media_resolver: Optional[MediaResolver] = None,
        position_hint: Optional[int] = None,
    ) -> SyncReport:
        """
        Synchronize the block last read as ``previous_source`` and rewrite it with remote IDs.

        Args:
            path (str): Document holding the block
            previous_source (str): Inner text of the block when it was read
            media_resolver (Optional[MediaResolver]): Loads images referenced by cards
            position_hint (Optional[int]): Offset of the intended block when several match

        Returns:
            SyncReport: Synchronized cards and counts

        Raises:
            BlockNotFoundError: If the document holds no block
            ValidationError: If the block has no target deck
            ReconcileError: If reconciliation aborts; the document is left untouched
        """
        text, location = await self._load(path, previous_source, position_hint)
        anomalies: List[ParseAnomaly] = []
        block = parse_block(location.inner, anomalies)

        if not block.target_deck:
            raise ValidationError("Block has no TARGET DECK line", "target_deck", {"document": path})

        reconciler = self.reconciler_factory(path)
        cards = await reconciler.reconcile(block.target_deck, block.cards, media_resolver)

        inner = serialize_block(block.deck_line, cards, block.instruction, block.status)
        await self.documents.write_text(path, replace_block(text, location, inner))

        stats = reconciler.stats
        logger.info(
            f"Synchronized {len(cards)} cards of {path} into {block.target_deck}",
            extra={"details": {"created": stats.created, "updated": stats.updated, "tier": location.tier.value}},
        )
        return SyncReport(
            document=path,
            deck=block.target_deck,
            cards=cards,
            created=stats.created,
            updated=stats.updated,
            skipped=stats.skipped,
            tier=location.tier,
            anomalies=anomalies,
        )

    async def save_block_changes(
        self,
        path: str,
        previous_source: str,
        cards: List[Card],
        deleted_ids: Sequence[int] = (),
        new_deck: Optional[str] = None,
        position_hint: Optional[int] = None,
    ) -> str:
        """
        Delete removed notes remotely and rewrite the block with the edited cards.

        Instruction and status lines of the block are kept. Returns the new inner block text.
        """
        text, location = await self._load(path, previous_source, position_hint)
        block = parse_block(location.inner)

        if deleted_ids:
            await self.note_store.delete_notes(list(deleted_ids))

        deck_line = f"{DECK_PREFIX} {new_deck}" if new_deck else block.deck_line
        inner = serialize_block(deck_line, cards, block.instruction, block.status)
        await self.documents.write_text(path, replace_block(text, location, inner))
        return inner

    async def apply_revision(
        self,
        path: str,
        previous_source: str,
        revised_text: str,
        resolutions: Optional[Mapping[int, Side]] = None,
        position_hint: Optional[int] = None,
    ) -> RevisionResult:
        """Merge a revised card text into the block without contacting the note store."""
        text, location = await self._load(path, previous_source, position_hint)
        block = parse_block(location.inner)

        entries = diff_cards(block.cards, parse_cards(revised_text))
        merged = merge_revision(entries, resolutions)

        inner = serialize_block(block.deck_line, merged, block.instruction, block.status)
        document = replace_block(text, location, inner)
        await self.documents.write_text(path, document)
        return RevisionResult(document=document, entries=entries, cards=merged)

    async def deck_status(self, block: Block) -> Dict[str, int]:
        """Compare local card counts of a block with the remote deck."""
        remote = await self.note_store.count_cards_in_deck(block.target_deck) if block.target_deck else 0
        return {
            "synchronized": block.synchronized_count,
            "local": len(block.cards),
            "remote": remote,
        }


def locate_or_raise(
    document: str,
    previous_source: str,
    name: str = "document",
    position_hint: Optional[int] = None,
) -> BlockLocation:
    location = locate_block(document, previous_source, position_hint)
    if location is None:
        raise BlockNotFoundError(name)
    return location
