import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from cardsync.core.exceptions.domain import (
    DuplicateNoteError,
    DuplicateUnresolvableError,
    FieldConfigMismatchError,
    NoteNotFoundError,
    NoteStoreError,
    ReconcileError,
    RemoteValidationError,
)
from cardsync.domain.cards.models import Card, CardKind
from cardsync.repositories.note_store import NoteStoreInterface

from .media import MediaResolver, MediaUploader
from .transforms import build_cloze_text, convert_internal_links, convert_latex, markdown_to_html

logger = logging.getLogger(__name__)

CLOZE_FIELD_ALIASES = ("Text", "Inhalt", "Cloze", "Lückentext")


@dataclass(frozen=True)
class NoteTemplates:
    """Note types and field names used for each kind of card."""

    basic_model: str = "Basic"
    basic_front: str = "Front"
    basic_back: str = "Back"
    typed_model: str = "Basic (type in the answer)"
    typed_front: str = "Front"
    typed_back: str = "Back"
    cloze_model: str = "Cloze"
    cloze_text: str = "Text"

    @classmethod
    def from_settings(cls, settings) -> "NoteTemplates":
        return cls(
            basic_model=settings.basic_model,
            basic_front=settings.basic_front_field,
            basic_back=settings.basic_back_field,
            typed_model=settings.typed_model,
            typed_front=settings.typed_front_field,
            typed_back=settings.typed_back_field,
            cloze_model=settings.cloze_model,
            cloze_text=settings.cloze_text_field,
        )

    def model_for(self, card: Card) -> str:
        if card.kind == CardKind.CLOZE:
            return self.cloze_model
        return self.typed_model if card.is_typed_recall else self.basic_model

    def configured_fields(self, card: Card) -> List[str]:
        if card.kind == CardKind.CLOZE:
            return [self.cloze_text]
        if card.is_typed_recall:
            return [self.typed_front, self.typed_back]
        return [self.basic_front, self.basic_back]


@dataclass
class ReconcileStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0


@dataclass
class _PreparedNote:
    model: str
    fields: Dict[str, str]
    search_field: str


class Reconciler:
    """
    Makes the remote note store match a list of cards.

    Cards are processed strictly one after another. A failing card aborts the
    call; notes written for earlier cards stay in the store and the error
    carries the partially synchronized list in ``partial_cards``.
    """

    def __init__(
        self,
        note_store: NoteStoreInterface,
        templates: NoteTemplates,
        vault_name: str,
        source_path: Optional[str] = None,
        tags: Sequence[str] = (),
    ):
        self.note_store = note_store
        self.templates = templates
        self.vault_name = vault_name
        self.source_path = source_path
        self.tags = list(tags)
        self.stats = ReconcileStats()
        self._field_names: Dict[Tuple[str, Tuple[str, ...]], List[str]] = {}

    async def reconcile(
        self,
        deck_path: str,
        cards: List[Card],
        media_resolver: Optional[MediaResolver] = None,
    ) -> List[Card]:
        """
        Synchronize cards into ``deck_path`` and return them with remote IDs.

        Args:
            deck_path (str): Full deck path, e.g. ``Math::Algebra``
            cards (List[Card]): Cards in block order
            media_resolver (Optional[MediaResolver]): Loads referenced images by name

        Returns:
            List[Card]: Input order minus skipped cards, each bound to its remote note

        Raises:
            ReconcileError: On the first card that cannot be synchronized
        """
        self.stats = ReconcileStats()
        self._field_names = {}
        media = MediaUploader(self.note_store, media_resolver)
        claimed: Set[int] = set()
        synchronized: List[Card] = []

        logger.info(f"Reconciling {len(cards)} cards into deck {deck_path}")

        index = 0
        try:
            await self.note_store.create_deck(deck_path)
            for index, card in enumerate(cards):
                result = await self._reconcile_card(deck_path, card, media, claimed)
                if result is None:
                    self.stats.skipped += 1
                    continue
                claimed.add(result.remote_id)
                synchronized.append(result)
        except ReconcileError as e:
            e.partial_cards = synchronized + list(cards[index:])
            logger.error(
                f"Reconciliation aborted after {len(synchronized)} cards: {e.message}",
                extra={"error_code": e.error_code, "details": e.details},
            )
            raise
        except NoteStoreError as e:
            error = RemoteValidationError("reconcile", e.message, {"error_code": e.error_code, **e.details})
            error.partial_cards = synchronized + list(cards[index:])
            logger.error(
                f"Reconciliation aborted after {len(synchronized)} cards: {e.message}",
                extra={"error_code": error.error_code, "details": error.details},
            )
            raise error from e

        logger.info(
            f"Reconciled deck {deck_path}: {self.stats.created} created, "
            f"{self.stats.updated} updated, {self.stats.skipped} skipped"
        )
        return synchronized

    async def _reconcile_card(
        self,
        deck_path: str,
        card: Card,
        media: MediaUploader,
        claimed: Set[int],
    ) -> Optional[Card]:
        if not card.question.strip():
            logger.debug("Skipping card with empty question")
            return None

        question = self._render(await media.rewrite(card.question))
        answer = self._render(await media.rewrite(card.answer))

        if card.kind == CardKind.CLOZE:
            text = build_cloze_text(question, answer)
            if not text.strip():
                return None
        elif not question.strip():
            return None
        else:
            text = None

        prepared = await self._prepare(card, question, answer, text)

        note_id = card.remote_id if card.remote_id not in claimed else None
        if note_id is None:
            note_id = await self._find(deck_path, prepared, claimed)

        if note_id is not None:
            try:
                await self.note_store.update_note_fields(note_id, prepared.fields)
                self.stats.updated += 1
                return card.with_remote_id(note_id)
            except NoteNotFoundError:
                logger.info(f"Note {note_id} no longer exists, creating it again")

        try:
            note_id = await self.note_store.add_note(deck_path, prepared.model, prepared.fields, self.tags)
            self.stats.created += 1
        except DuplicateNoteError:
            note_id = await self._find(deck_path, prepared, claimed)
            if note_id is None:
                raise DuplicateUnresolvableError(
                    card.question, {"deck": deck_path, "model": prepared.model, "fields": prepared.fields}
                )
            logger.info(f"Linked duplicate to existing note {note_id}")
            await self.note_store.update_note_fields(note_id, prepared.fields)
            self.stats.updated += 1

        return card.with_remote_id(note_id)

    def _render(self, text: str) -> str:
        text = convert_latex(text)
        text = convert_internal_links(text, self.vault_name, self.source_path)
        return markdown_to_html(text)

    async def _find(self, deck_path: str, prepared: _PreparedNote, claimed: Set[int]) -> Optional[int]:
        ids = await self.note_store.find_notes_by_field(
            deck_path, prepared.search_field, prepared.fields[prepared.search_field]
        )
        return next((note_id for note_id in ids if note_id not in claimed), None)

    async def _prepare(self, card: Card, question: str, answer: str, cloze_text: Optional[str]) -> _PreparedNote:
        model = self.templates.model_for(card)
        fields = await self._resolve_fields(card, model)
        if card.kind == CardKind.CLOZE:
            return _PreparedNote(model=model, fields={fields[0]: cloze_text or ""}, search_field=fields[0])
        front, back = fields
        return _PreparedNote(model=model, fields={front: question, back: answer}, search_field=front)

    async def _resolve_fields(self, card: Card, model: str) -> List[str]:
        """Check configured field names against the note type, once per model and call."""
        configured = self.templates.configured_fields(card)
        key = (model, tuple(configured))
        if key in self._field_names:
            return self._field_names[key]

        available = await self.note_store.get_model_field_names(model)

        if card.kind == CardKind.CLOZE:
            candidates = [configured[0]] + [alias for alias in CLOZE_FIELD_ALIASES if alias != configured[0]]
            resolved = next(([name] for name in candidates if name in available), None)
        elif all(name in available for name in configured):
            resolved = configured
        elif len(available) == 2:
            logger.warning(f"Note type {model} has fields {available}, remapping from {configured}")
            resolved = list(available)
        else:
            resolved = None

        if resolved is None:
            raise FieldConfigMismatchError(model, configured, list(available))

        self._field_names[key] = resolved
        return resolved
