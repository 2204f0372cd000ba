from unittest.mock import AsyncMock

import pytest

from cardsync.core.exceptions.domain import (
    DuplicateNoteError,
    DuplicateUnresolvableError,
    FieldConfigMismatchError,
    RemoteUnreachableError,
    RemoteValidationError,
)
from cardsync.domain.cards.models import Card, CardKind
from cardsync.domain.cards.parser import parse_cards
from cardsync.domain.cards.serializer import serialize_block
from cardsync.domain.sync.reconciler import Reconciler


def basic(question, answer="", remote_id=None):
    return Card(kind=CardKind.BASIC, question=question, answer=answer, remote_id=remote_id)


def cloze(question, answer="", remote_id=None):
    return Card(kind=CardKind.CLOZE, question=question, answer=answer, remote_id=remote_id)


class TestReconcile:

    async def test_creates_note_and_assigns_id(self, reconciler, note_store):
        block = "TARGET DECK: Math::Algebra\n\nQ: What is 2+2?\nA: 4"

        cards = await reconciler.reconcile("Math::Algebra", parse_cards(block))

        assert cards == [basic("What is 2+2?", "4", remote_id=101)]
        assert serialize_block("TARGET DECK: Math::Algebra", cards) == block + "\nID: 101"
        assert note_store.notes[101]["fields"] == {"Front": "What is 2+2?", "Back": "4"}
        assert note_store.notes[101]["tags"] == ["anki-block-sync"]
        assert note_store.decks == {"Math::Algebra"}

    async def test_cloze_text_field(self, reconciler, note_store):
        cards = await reconciler.reconcile("Geo", parse_cards("The capital of France is ____.\nxxx\nParis"))

        assert cards[0].remote_id == 101
        assert note_store.notes[101]["model"] == "Cloze"
        assert note_store.notes[101]["fields"] == {"Text": "The capital of France is {{c1::Paris}}."}

    async def test_whitespace_question_is_skipped(self, reconciler, note_store):
        cards = await reconciler.reconcile("Deck", [basic("   ", "answer")])

        assert cards == []
        assert reconciler.stats.skipped == 1
        assert [call[0] for call in note_store.calls] == ["createDeck"]

    async def test_output_keeps_order_without_skipped_cards(self, reconciler):
        cards = await reconciler.reconcile("Deck", [basic("a", "1"), basic(" ", "x"), cloze("b ____", "2")])

        assert [(card.question, card.remote_id) for card in cards] == [("a", 101), ("b ____", 102)]

    async def test_second_run_creates_nothing(self, reconciler, note_store):
        original = [basic("a", "1"), cloze("b ____", "2")]

        first = await reconciler.reconcile("Deck", original)
        second = await reconciler.reconcile("Deck", first)
        without_ids = await reconciler.reconcile("Deck", original)

        assert note_store.count("addNote") == 2
        assert second == first
        assert without_ids == first
        assert reconciler.stats.created == 0
        assert reconciler.stats.updated == 2

    async def test_deck_created_once_per_call(self, reconciler, note_store):
        await reconciler.reconcile("Deck", [basic("a", "1"), basic("b", "2"), basic("c", "3")])

        assert note_store.count("createDeck") == 1

    async def test_remote_deletion_recreates_note(self, reconciler, note_store):
        cards = await reconciler.reconcile("Deck", [basic("a", "1", remote_id=999)])

        assert cards == [basic("a", "1", remote_id=101)]
        assert note_store.count("updateNoteFields") == 1
        assert note_store.count("addNote") == 1

    async def test_existing_id_is_updated(self, reconciler, note_store):
        note_store.seed(55, "Deck", "Basic", {"Front": "a", "Back": "old"})

        cards = await reconciler.reconcile("Deck", [basic("a", "new", remote_id=55)])

        assert cards[0].remote_id == 55
        assert note_store.notes[55]["fields"]["Back"] == "new"
        assert note_store.count("addNote") == 0

    async def test_duplicate_is_linked_to_existing_note(self, reconciler, note_store):
        note_store.seed(55, "Deck", "Basic", {"Front": "a", "Back": "old"})
        note_store.find_notes_by_field = AsyncMock(side_effect=[[], [55]])

        cards = await reconciler.reconcile("Deck", [basic("a", "new")])

        assert cards[0].remote_id == 55
        assert note_store.notes[55]["fields"]["Back"] == "new"
        assert reconciler.stats.updated == 1

    async def test_duplicate_without_match_fails(self, reconciler, note_store):
        note_store.add_note = AsyncMock(side_effect=DuplicateNoteError("cannot create note because it is a duplicate"))

        with pytest.raises(DuplicateUnresolvableError) as exc_info:
            await reconciler.reconcile("Deck", [basic("a", "1")])

        assert exc_info.value.partial_cards == [basic("a", "1")]

    async def test_remote_id_is_never_shared_by_two_cards(self, reconciler):
        with pytest.raises(DuplicateUnresolvableError) as exc_info:
            await reconciler.reconcile("Deck", [basic("same", "1"), basic("same", "1")])

        assert exc_info.value.partial_cards[0].remote_id == 101
        assert exc_info.value.partial_cards[1].remote_id is None

    async def test_partial_failure_keeps_earlier_ids(self, reconciler, note_store):
        create = note_store.add_note
        calls = {"count": 0}

        async def failing_second_add(deck, model, fields, tags=()):
            calls["count"] += 1
            if calls["count"] == 2:
                raise RemoteValidationError("addNote", "cannot create note because it is empty")
            return await create(deck, model, fields, tags)

        note_store.add_note = failing_second_add
        cards = [basic("a", "1"), basic("b", "2"), basic("c", "3")]

        with pytest.raises(RemoteValidationError) as exc_info:
            await reconciler.reconcile("Deck", cards)

        assert exc_info.value.partial_cards == [basic("a", "1", remote_id=101), basic("b", "2"), basic("c", "3")]
        assert list(note_store.notes) == [101]

    async def test_unreachable_store_aborts(self, reconciler, note_store):
        note_store.create_deck = AsyncMock(side_effect=RemoteUnreachableError("http://127.0.0.1:8765", "refused"))
        cards = [basic("a", "1")]

        with pytest.raises(RemoteUnreachableError) as exc_info:
            await reconciler.reconcile("Deck", cards)

        assert exc_info.value.partial_cards == cards
        assert note_store.count("addNote") == 0


class TestFieldValidation:

    async def test_two_field_template_is_remapped(self, templates, make_note_store):
        note_store = make_note_store(model_fields={"Basic": ["Vorderseite", "Rückseite"]})
        reconciler = Reconciler(note_store, templates, "Vault")

        await reconciler.reconcile("Deck", [basic("a", "1"), basic("b", "2")])

        assert note_store.notes[101]["fields"] == {"Vorderseite": "a", "Rückseite": "1"}
        assert note_store.count("modelFieldNames") == 1

    async def test_mismatch_fails(self, templates, make_note_store):
        note_store = make_note_store(model_fields={"Basic": ["One", "Two", "Three"]})
        reconciler = Reconciler(note_store, templates, "Vault")

        with pytest.raises(FieldConfigMismatchError) as exc_info:
            await reconciler.reconcile("Deck", [basic("a", "1")])

        assert exc_info.value.details["available"] == ["One", "Two", "Three"]
        assert note_store.count("addNote") == 0

    async def test_cloze_field_alias(self, templates, make_note_store):
        note_store = make_note_store(model_fields={"Cloze": ["Lückentext", "Extra"]})
        reconciler = Reconciler(note_store, templates, "Vault")

        await reconciler.reconcile("Deck", [cloze("x ____", "y")])

        assert note_store.notes[101]["fields"] == {"Lückentext": "x {{c1::y}}"}

    async def test_typed_recall_uses_typed_model(self, reconciler, note_store):
        card = Card(kind=CardKind.BASIC, question="a", answer="1", is_typed_recall=True)

        await reconciler.reconcile("Deck", [card])

        assert note_store.notes[101]["model"] == "Basic (type in the answer)"


class TestContent:

    async def test_fields_are_converted(self, reconciler, note_store):
        card = basic("What is $x$ in [[Algebra]]?", "**two**\nlines")

        await reconciler.reconcile("Deck", [card])

        fields = note_store.notes[101]["fields"]
        assert fields["Front"] == (
            'What is \\(x\\) in <a href="obsidian://open?vault=Vault&file=Algebra">Algebra</a>?'
        )
        assert fields["Back"] == "<b>two</b><br>lines"

    async def test_media_uploaded_once_per_name(self, reconciler, note_store):
        resolver = AsyncMock(side_effect=lambda name: b"png-bytes" if name == "img.png" else None)
        cards = [basic("![[img.png]] first", "![[img.png|200]]"), basic("![](assets/img.png) second", "![[gone.png]]")]

        await reconciler.reconcile("Deck", cards, resolver)

        assert note_store.count("storeMediaFile") == 1
        assert resolver.await_count == 2
        assert note_store.notes[101]["fields"] == {"Front": '<img src="img.png"> first', "Back": '<img src="img.png">'}
        assert note_store.notes[102]["fields"]["Back"] == "[Image not found: gone.png]"

    async def test_same_file_name_in_different_folders(self, reconciler, note_store):
        images = {"a/x.png": b"first", "b/x.png": b"second"}
        resolver = AsyncMock(side_effect=lambda name: images.get(name))

        await reconciler.reconcile("Deck", [basic("![[a/x.png]]", "1"), basic("![[b/x.png]]", "2")], resolver)

        assert sorted(note_store.media) == ["a_x.png", "b_x.png"]
        assert note_store.notes[101]["fields"]["Front"] == '<img src="a_x.png">'
        assert note_store.notes[102]["fields"]["Front"] == '<img src="b_x.png">'
