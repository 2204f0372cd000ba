from typing import Dict, List, Optional

from .base import AppError, ResourceNotFoundError


class BlockNotFoundError(ResourceNotFoundError):
    """Raised when no anki-cards block can be located in a document"""

    def __init__(self, document: str, details: Optional[Dict] = None):
        super().__init__("anki-cards block", document, details)


class NoteStoreError(AppError):
    """Condition reported by the remote note store"""

    def __init__(self, message: str, error_code: str = "NOTE_STORE_ERROR", details: Optional[Dict] = None):
        super().__init__(message, error_code, details)


class DuplicateNoteError(NoteStoreError):
    """The store refused to create a note because an identical one exists"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, "DUPLICATE_NOTE", details)


class NoteNotFoundError(NoteStoreError):
    """The store has no note with the given ID"""

    def __init__(self, note_id: int, details: Optional[Dict] = None):
        self.note_id = note_id
        super().__init__(f"Note was not found: {note_id}", "NOTE_NOT_FOUND", {"note_id": note_id, **(details or {})})


class ReconcileError(AppError):
    """Base class for errors that abort a reconciliation call.

    ``partial_cards`` is filled in by the reconciler: the cards synchronized
    before the failure followed by the cards that were not reached.
    """

    def __init__(self, message: str, error_code: str = "RECONCILE_ERROR", details: Optional[Dict] = None):
        super().__init__(message, error_code, details)
        self.partial_cards: List = []


class RemoteUnreachableError(ReconcileError):
    """Transport-level failure talking to the note store"""

    def __init__(self, url: str, reason: str, details: Optional[Dict] = None):
        super().__init__(
            f"Could not reach the note store at {url}: {reason}",
            "REMOTE_UNREACHABLE",
            {"url": url, "reason": reason, **(details or {})},
        )


class RemoteValidationError(ReconcileError):
    """Any store-reported rejection that is not a recoverable condition"""

    def __init__(self, action: str, error: str, details: Optional[Dict] = None):
        super().__init__(
            f"Note store rejected '{action}': {error}",
            "REMOTE_VALIDATION_ERROR",
            {"action": action, "error": error, **(details or {})},
        )


class DuplicateUnresolvableError(ReconcileError):
    """A duplicate exists remotely but no matching note can be located"""

    def __init__(self, question: str, details: Optional[Dict] = None):
        super().__init__(
            f"Note store reports a duplicate but no unclaimed matching note was found: {question[:60]}",
            "DUPLICATE_UNRESOLVABLE",
            {"question": question, **(details or {})},
        )


class FieldConfigMismatchError(ReconcileError):
    """Configured field names do not exist on the remote note type"""

    def __init__(self, model: str, configured: List[str], available: List[str]):
        super().__init__(
            f"Note type '{model}' has fields {available}, configured fields {configured} do not match",
            "FIELD_CONFIG_MISMATCH",
            {"model": model, "configured": configured, "available": available},
        )
