from fastapi import APIRouter, Depends

from cardsync.core.container import get_note_store
from cardsync.core.error_handling import handle_exceptions
from cardsync.monitoring.health import HealthCheck
from cardsync.repositories.note_store import NoteStoreInterface

router = APIRouter()


@router.get("/health")
@handle_exceptions()
async def health_check(note_store: NoteStoreInterface = Depends(get_note_store)):
    """
    Perform system health check.

    Returns:
        JSONResponse: Health check results, 503 when the note store does not answer
    """
    return await HealthCheck(note_store).get_health()
