import json

import httpx
import pytest

from cardsync.core.exceptions.domain import (
    DuplicateNoteError,
    NoteNotFoundError,
    RemoteUnreachableError,
    RemoteValidationError,
)
from cardsync.repositories.note_store import AnkiConnectNoteStore, build_field_query

URL = "http://127.0.0.1:8765"


def make_store(handler, max_retries=3):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnkiConnectNoteStore(URL, max_retries=max_retries, backoff_min=0, backoff_max=0, client=client)


def reply(result=None, error=None):
    return httpx.Response(200, json={"result": result, "error": error})


class TestAnkiConnectNoteStore:

    async def test_request_envelope(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return reply(1234)

        store = make_store(handler)
        note_id = await store.add_note("Deck", "Basic", {"Front": "a", "Back": "b"}, ["tag"])

        assert note_id == 1234
        assert requests[0]["action"] == "addNote"
        assert requests[0]["version"] == 6
        assert requests[0]["params"]["note"]["deckName"] == "Deck"
        assert requests[0]["params"]["note"]["fields"] == {"Front": "a", "Back": "b"}
        assert requests[0]["params"]["note"]["tags"] == ["tag"]
        await store.close()

    async def test_find_notes_query(self):
        queries = []

        def handler(request):
            queries.append(json.loads(request.content)["params"]["query"])
            return reply([1, 2])

        store = make_store(handler)

        assert await store.find_notes_by_field("Math::Algebra", "Front", "What is 2+2?") == [1, 2]
        assert queries == ['"deck:Math::Algebra" "Front:What is 2+2?"']

    def test_query_escaping(self):
        assert build_field_query("D", "Front", 'say "hi" *now_') == '"deck:D" "Front:say \\"hi\\" \\*now\\_"'

    async def test_duplicate_error(self):
        store = make_store(lambda request: reply(error="cannot create note because it is a duplicate"))

        with pytest.raises(DuplicateNoteError):
            await store.add_note("Deck", "Basic", {"Front": "a", "Back": "b"})

    async def test_note_not_found_on_update(self):
        store = make_store(lambda request: reply(error="Note was not found: 42"))

        with pytest.raises(NoteNotFoundError) as exc_info:
            await store.update_note_fields(42, {"Front": "a"})

        assert exc_info.value.note_id == 42

    async def test_other_errors_keep_request_and_response(self):
        store = make_store(lambda request: reply(error="model was not found: Missing"))

        with pytest.raises(RemoteValidationError) as exc_info:
            await store.get_model_field_names("Missing")

        details = exc_info.value.details
        assert details["request"] == {"action": "modelFieldNames", "params": {"modelName": "Missing"}}
        assert details["response"]["error"] == "model was not found: Missing"

    async def test_media_payload_is_not_kept_in_diagnostics(self):
        store = make_store(lambda request: reply(error="permission denied"))

        with pytest.raises(RemoteValidationError) as exc_info:
            await store.store_media_file("a.png", "QUJD")

        assert exc_info.value.details["request"]["params"]["data"] == "<4 base64 characters>"

    async def test_transport_errors_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 2:
                raise httpx.ConnectError("connection refused", request=request)
            return reply(6)

        store = make_store(handler)

        assert await store.version() == 6
        assert len(attempts) == 2

    async def test_unreachable_after_retries(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        store = make_store(handler, max_retries=2)

        with pytest.raises(RemoteUnreachableError) as exc_info:
            await store.create_deck("Deck")

        assert len(attempts) == 2
        assert exc_info.value.details["url"] == URL

    async def test_http_error_status(self):
        store = make_store(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(RemoteValidationError):
            await store.version()

    async def test_count_cards_in_deck(self):
        store = make_store(lambda request: reply([10, 11, 12]))

        assert await store.count_cards_in_deck("Deck") == 3

    async def test_delete_without_ids_sends_nothing(self):
        requests = []
        store = make_store(lambda request: requests.append(request) or reply())

        await store.delete_notes([])

        assert requests == []
