from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from cardsync.core.config import settings
from cardsync.core.error_handling import handle_service_errors
from cardsync.repositories.note_store import NoteStoreInterface


@dataclass
class ServiceHealth:
    anki_connect: bool
    anki_connect_version: Optional[int] = None


class HealthCheck:
    """Health check for the remote note store"""

    def __init__(self, note_store: NoteStoreInterface):
        self.note_store = note_store

    @handle_service_errors(default_return_value=None)
    async def _probe_version(self) -> Optional[int]:
        return await self.note_store.version()

    async def check_services(self) -> Dict[str, Any]:
        """Perform health checks for all services."""
        version = await self._probe_version()
        return asdict(ServiceHealth(anki_connect=version is not None, anki_connect_version=version))

    async def get_health(self) -> JSONResponse:
        """Return the health status of all services."""
        services = await self.check_services()
        status = "healthy" if services["anki_connect"] else "unhealthy"
        return JSONResponse(
            content={"status": status, "services": services, "endpoint": settings.anki_connect_url},
            status_code=200 if status == "healthy" else 503,
        )
