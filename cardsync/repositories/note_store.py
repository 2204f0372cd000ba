import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.exceptions.domain import (
    DuplicateNoteError,
    NoteNotFoundError,
    RemoteUnreachableError,
    RemoteValidationError,
)

logger = logging.getLogger(__name__)

NOTE_UPDATE_ACTIONS = ("updateNoteFields",)
SEARCH_SPECIAL_CHARACTERS = ("\\", '"', "*", "_")


def escape_search_term(value: str) -> str:
    """Escape a value for use inside a quoted Anki search term."""
    for character in SEARCH_SPECIAL_CHARACTERS:
        value = value.replace(character, f"\\{character}")
    return value


def build_field_query(deck: str, field: str, value: str) -> str:
    return f'"deck:{escape_search_term(deck)}" "{escape_search_term(field)}:{escape_search_term(value)}"'


class NoteStoreInterface(ABC):
    """Abstract base class for remote note stores."""

    @abstractmethod
    async def find_notes_by_field(self, deck: str, field: str, value: str) -> List[int]:
        """
        Find notes in a deck whose field equals the given value exactly.

        Args:
            deck (str): Deck the search is limited to
            field (str): Field name
            value (str): Field content as stored remotely
        """
        pass

    @abstractmethod
    async def create_deck(self, deck: str) -> None:
        """Create a deck; creating an existing deck is a no-op."""
        pass

    @abstractmethod
    async def add_note(self, deck: str, model: str, fields: Dict[str, str], tags: Sequence[str] = ()) -> int:
        """
        Create a note and return its ID.

        Raises:
            DuplicateNoteError: If an identical note already exists
        """
        pass

    @abstractmethod
    async def update_note_fields(self, note_id: int, fields: Dict[str, str]) -> None:
        """
        Overwrite fields of an existing note.

        Raises:
            NoteNotFoundError: If the note does not exist anymore
        """
        pass

    @abstractmethod
    async def delete_notes(self, note_ids: Sequence[int]) -> None:
        pass

    @abstractmethod
    async def get_model_field_names(self, model: str) -> List[str]:
        pass

    @abstractmethod
    async def store_media_file(self, filename: str, data_b64: str) -> str:
        """Store a media file and return the file name it was stored under."""
        pass

    @abstractmethod
    async def count_cards_in_deck(self, deck: str) -> int:
        pass

    @abstractmethod
    async def version(self) -> int:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


class AnkiConnectNoteStore(NoteStoreInterface):
    """Note store backed by the AnkiConnect JSON API."""

    def __init__(
        self,
        url: str,
        api_version: int = 6,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the AnkiConnect note store.

        Args:
            url (str): AnkiConnect endpoint
            api_version (int): Protocol version sent with every request
            timeout (float): Timeout for a single request in seconds
            max_retries (int): Attempts made for transport-level failures
            backoff_min (float): Minimum wait between attempts in seconds
            backoff_max (float): Maximum wait between attempts in seconds
            client (Optional[httpx.AsyncClient]): Client to use instead of a new one
        """
        self.url = url
        self.api_version = api_version
        self.max_retries = max_retries
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying AnkiConnect request '{payload['action']}'")
                return await self.client.post(self.url, json=payload)

    async def invoke(self, action: str, **params: Any) -> Any:
        """
        Send one AnkiConnect action and return its result.

        Raises:
            RemoteUnreachableError: When the endpoint cannot be reached after all retries
            DuplicateNoteError: When the store reports a duplicate note
            NoteNotFoundError: When a note update targets a missing note
            RemoteValidationError: For any other reported error
        """
        payload = {"action": action, "version": self.api_version, "params": params}
        request_details = {"action": action, "params": _redact(params)}

        try:
            response = await self._post(payload)
        except httpx.TransportError as e:
            logger.error(f"AnkiConnect unreachable at {self.url}: {e}")
            raise RemoteUnreachableError(self.url, str(e) or type(e).__name__, {"request": request_details}) from e

        if response.status_code != 200:
            raise RemoteValidationError(
                action,
                f"HTTP {response.status_code}",
                {"request": request_details, "response": response.text[:1000]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteValidationError(
                action, "Invalid JSON response", {"request": request_details, "response": response.text[:1000]}
            ) from e

        if not isinstance(body, dict) or "result" not in body or "error" not in body:
            raise RemoteValidationError(
                action, "Unexpected response envelope", {"request": request_details, "response": body}
            )

        error = body["error"]
        if error:
            self._raise_for_error(action, params, str(error), {"request": request_details, "response": body})

        return body["result"]

    def _raise_for_error(self, action: str, params: Dict[str, Any], error: str, details: Dict[str, Any]) -> None:
        lowered = error.lower()
        if "duplicate" in lowered:
            raise DuplicateNoteError(error, details)
        if "not found" in lowered and action in NOTE_UPDATE_ACTIONS:
            raise NoteNotFoundError(params.get("note", {}).get("id"), details)
        logger.error(f"AnkiConnect rejected '{action}': {error}", extra={"details": details})
        raise RemoteValidationError(action, error, details)

    async def find_notes_by_field(self, deck: str, field: str, value: str) -> List[int]:
        return list(await self.invoke("findNotes", query=build_field_query(deck, field, value)) or [])

    async def create_deck(self, deck: str) -> None:
        await self.invoke("createDeck", deck=deck)

    async def add_note(self, deck: str, model: str, fields: Dict[str, str], tags: Sequence[str] = ()) -> int:
        note = {
            "deckName": deck,
            "modelName": model,
            "fields": fields,
            "tags": list(tags),
            "options": {"allowDuplicate": False, "duplicateScope": "deck"},
        }
        note_id = await self.invoke("addNote", note=note)
        if note_id is None:
            raise RemoteValidationError("addNote", "No note ID returned", {"request": {"note": note}})
        return int(note_id)

    async def update_note_fields(self, note_id: int, fields: Dict[str, str]) -> None:
        await self.invoke("updateNoteFields", note={"id": note_id, "fields": fields})

    async def delete_notes(self, note_ids: Sequence[int]) -> None:
        if not note_ids:
            return
        await self.invoke("deleteNotes", notes=list(note_ids))
        logger.info(f"Deleted {len(note_ids)} notes")

    async def get_model_field_names(self, model: str) -> List[str]:
        return list(await self.invoke("modelFieldNames", modelName=model) or [])

    async def store_media_file(self, filename: str, data_b64: str) -> str:
        stored = await self.invoke("storeMediaFile", filename=filename, data=data_b64)
        return stored or filename

    async def count_cards_in_deck(self, deck: str) -> int:
        cards = await self.invoke("findCards", query=f'"deck:{escape_search_term(deck)}"')
        return len(cards or [])

    async def version(self) -> int:
        return int(await self.invoke("version"))

    async def close(self) -> None:
        await self.client.aclose()


def _redact(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop media payloads from request diagnostics."""
    if "data" not in params:
        return params
    return {**params, "data": f"<{len(params['data'])} base64 characters>"}
