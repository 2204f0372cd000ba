from typing import Dict, List, Optional, Sequence

import pytest

from cardsync.core.exceptions.base import ResourceNotFoundError
from cardsync.core.exceptions.domain import DuplicateNoteError, NoteNotFoundError
from cardsync.domain.sync.reconciler import NoteTemplates, Reconciler
from cardsync.domain.sync.service import BlockSyncService
from cardsync.repositories.document_repository import DocumentRepositoryInterface
from cardsync.repositories.note_store import NoteStoreInterface

DEFAULT_MODEL_FIELDS = {
    "Basic": ["Front", "Back"],
    "Basic (type in the answer)": ["Front", "Back"],
    "Cloze": ["Text", "Back Extra"],
}


class FakeNoteStore(NoteStoreInterface):
    """In-memory note store that records every call."""

    def __init__(self, model_fields: Optional[Dict[str, List[str]]] = None, first_id: int = 101):
        self.model_fields = model_fields or dict(DEFAULT_MODEL_FIELDS)
        self.notes: Dict[int, Dict] = {}
        self.decks = set()
        self.media: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.closed = False
        self._next_id = first_id

    def count(self, action: str) -> int:
        return sum(1 for call in self.calls if call[0] == action)

    def seed(self, note_id: int, deck: str, model: str, fields: Dict[str, str]) -> None:
        self.notes[note_id] = {"deck": deck, "model": model, "fields": dict(fields), "tags": []}

    async def find_notes_by_field(self, deck: str, field: str, value: str) -> List[int]:
        self.calls.append(("findNotes", deck, field, value))
        return [
            note_id
            for note_id, note in self.notes.items()
            if note["deck"] == deck and note["fields"].get(field) == value
        ]

    async def create_deck(self, deck: str) -> None:
        self.calls.append(("createDeck", deck))
        self.decks.add(deck)

    async def add_note(self, deck: str, model: str, fields: Dict[str, str], tags: Sequence[str] = ()) -> int:
        self.calls.append(("addNote", deck, model, dict(fields)))
        first_field, first_value = next(iter(fields.items()))
        for note in self.notes.values():
            if note["deck"] == deck and note["model"] == model and note["fields"].get(first_field) == first_value:
                raise DuplicateNoteError("cannot create note because it is a duplicate")

        note_id = self._next_id
        self._next_id += 1
        self.notes[note_id] = {"deck": deck, "model": model, "fields": dict(fields), "tags": list(tags)}
        return note_id

    async def update_note_fields(self, note_id: int, fields: Dict[str, str]) -> None:
        self.calls.append(("updateNoteFields", note_id, dict(fields)))
        if note_id not in self.notes:
            raise NoteNotFoundError(note_id)
        self.notes[note_id]["fields"].update(fields)

    async def delete_notes(self, note_ids: Sequence[int]) -> None:
        self.calls.append(("deleteNotes", list(note_ids)))
        for note_id in note_ids:
            self.notes.pop(note_id, None)

    async def get_model_field_names(self, model: str) -> List[str]:
        self.calls.append(("modelFieldNames", model))
        return list(self.model_fields.get(model, []))

    async def store_media_file(self, filename: str, data_b64: str) -> str:
        self.calls.append(("storeMediaFile", filename))
        self.media[filename] = data_b64
        return filename

    async def count_cards_in_deck(self, deck: str) -> int:
        self.calls.append(("findCards", deck))
        return sum(1 for note in self.notes.values() if note["deck"] == deck)

    async def version(self) -> int:
        return 6

    async def close(self) -> None:
        self.closed = True


class InMemoryDocuments(DocumentRepositoryInterface):
    def __init__(self, documents: Optional[Dict[str, str]] = None):
        self.documents = dict(documents or {})
        self.reads = 0
        self.writes = 0

    async def read_text(self, path: str) -> str:
        self.reads += 1
        if path not in self.documents:
            raise ResourceNotFoundError("document", path)
        return self.documents[path]

    async def write_text(self, path: str, text: str) -> None:
        self.writes += 1
        self.documents[path] = text


@pytest.fixture
def note_store():
    return FakeNoteStore()


@pytest.fixture
def templates():
    return NoteTemplates()


@pytest.fixture
def reconciler(note_store, templates):
    return Reconciler(note_store, templates, vault_name="Vault", tags=["anki-block-sync"])


@pytest.fixture
def documents():
    return InMemoryDocuments()


@pytest.fixture
def sync_service(note_store, templates, documents):
    return BlockSyncService(
        reconciler_factory=lambda source_path: Reconciler(note_store, templates, "Vault", source_path),
        note_store=note_store,
        documents=documents,
    )


@pytest.fixture
def make_note_store():
    return FakeNoteStore
