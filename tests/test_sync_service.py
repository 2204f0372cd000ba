from unittest.mock import AsyncMock

import pytest

from cardsync.core.exceptions.base import ValidationError
from cardsync.core.exceptions.domain import BlockNotFoundError, RemoteUnreachableError
from cardsync.domain.cards.locator import MatchTier
from cardsync.domain.cards.models import Card, CardKind
from cardsync.domain.cards.parser import parse_block
from cardsync.domain.revision.differ import Side

INNER = "TARGET DECK: Math::Algebra\n\nQ: What is 2+2?\nA: 4"
DOCUMENT = f"# Algebra\n\nSome notes.\n\n```anki-cards\n{INNER}\n```\n\nfooter\n"


class TestSyncBlock:

    async def test_writes_ids_back_into_the_block(self, sync_service, documents):
        documents.documents["algebra.md"] = DOCUMENT

        report = await sync_service.sync_block("algebra.md", INNER)

        assert report.deck == "Math::Algebra"
        assert report.created == 1
        assert report.tier == MatchTier.EXACT
        assert documents.documents["algebra.md"] == DOCUMENT.replace("A: 4\n", "A: 4\nID: 101\n")
        assert documents.reads == 1
        assert documents.writes == 1

    async def test_second_sync_is_idempotent(self, sync_service, documents, note_store):
        documents.documents["algebra.md"] = DOCUMENT
        await sync_service.sync_block("algebra.md", INNER)

        report = await sync_service.sync_block("algebra.md", INNER + "\nID: 101")

        assert report.created == 0
        assert report.updated == 1
        assert note_store.count("addNote") == 1

    async def test_failed_reconcile_leaves_document_untouched(self, sync_service, documents, note_store):
        documents.documents["algebra.md"] = DOCUMENT
        note_store.create_deck = AsyncMock(side_effect=RemoteUnreachableError("http://127.0.0.1:8765", "refused"))

        with pytest.raises(RemoteUnreachableError):
            await sync_service.sync_block("algebra.md", INNER)

        assert documents.writes == 0
        assert documents.documents["algebra.md"] == DOCUMENT

    async def test_missing_block(self, sync_service, documents):
        documents.documents["empty.md"] = "# Nothing here\n"

        with pytest.raises(BlockNotFoundError):
            await sync_service.sync_block("empty.md", INNER)

    async def test_missing_deck(self, sync_service, documents):
        documents.documents["nodeck.md"] = "```anki-cards\nQ: a\nA: b\n```"

        with pytest.raises(ValidationError):
            await sync_service.sync_block("nodeck.md", "Q: a\nA: b")

    async def test_position_hint_selects_identical_block(self, sync_service, documents):
        inner = "TARGET DECK: D\n\nQ: a\nA: b"
        block = f"```anki-cards\n{inner}\n```"
        documents.documents["n.md"] = f"{block}\n\n{block}\n"

        await sync_service.sync_block("n.md", inner, position_hint=0)

        first, second = documents.documents["n.md"].split("\n\n```anki-cards")
        assert "ID: 101" in first
        assert "ID: 101" not in second

    async def test_without_hint_the_last_identical_block_is_synced(self, sync_service, documents):
        inner = "TARGET DECK: D\n\nQ: a\nA: b"
        block = f"```anki-cards\n{inner}\n```"
        documents.documents["n.md"] = f"{block}\n\n{block}\n"

        await sync_service.sync_block("n.md", inner)

        assert documents.documents["n.md"].startswith(f"{block}\n\n")

    async def test_anomalies_are_reported(self, sync_service, documents):
        inner = "TARGET DECK: X\n\nnot a card\n\nQ: a\nA: b"
        documents.documents["note.md"] = f"```anki-cards\n{inner}\n```"

        report = await sync_service.sync_block("note.md", inner)

        assert len(report.cards) == 1
        assert report.anomalies[0].line_number == 3


class TestBlockEdits:

    async def test_save_block_changes(self, sync_service, documents, note_store):
        note_store.seed(7, "X", "Basic", {"Front": "old", "Back": "1"})
        inner = "TARGET DECK: X\nINSTRUCTION: keep it short\n\nQ: old\nA: 1\nID: 7"
        documents.documents["note.md"] = f"```anki-cards\n{inner}\n```"
        cards = [Card(kind=CardKind.BASIC, question="new", answer="2")]

        result = await sync_service.save_block_changes("note.md", inner, cards, deleted_ids=[7], new_deck="Y")

        assert result == "TARGET DECK: Y\nINSTRUCTION: keep it short\n\nQ: new\nA: 2"
        assert 7 not in note_store.notes
        assert documents.documents["note.md"] == f"```anki-cards\n{result}\n```"

    async def test_apply_revision_makes_no_remote_calls(self, sync_service, documents, note_store):
        inner = "TARGET DECK: X\n\nQ: A\nA: 1\nID: 5\n\nQ: gone\nA: x\nID: 6"
        documents.documents["note.md"] = f"intro\n```anki-cards\n{inner}\n```\n"

        result = await sync_service.apply_revision("note.md", inner, "Q: A\nA: 2\n\nQ: added\nA: y", {1: Side.OLD})

        assert [(card.question, card.answer, card.remote_id) for card in result.cards] == [
            ("A", "2", 5),
            ("gone", "x", 6),
            ("added", "y", None),
        ]
        assert result.document == documents.documents["note.md"]
        assert "Q: A\nA: 2\nID: 5" in result.document
        assert note_store.calls == []

    async def test_deck_status(self, sync_service, note_store):
        note_store.seed(1, "X", "Basic", {"Front": "a", "Back": "b"})
        note_store.seed(2, "X", "Basic", {"Front": "c", "Back": "d"})
        block = parse_block("TARGET DECK: X\n\nQ: a\nA: b\nID: 1\n\nQ: e\nA: f")

        status = await sync_service.deck_status(block)

        assert status == {"synchronized": 1, "local": 2, "remote": 2}
