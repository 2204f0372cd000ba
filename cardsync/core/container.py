import asyncio
import logging
from typing import Optional

from cardsync.core.config import settings
from cardsync.domain.sync.reconciler import NoteTemplates, Reconciler
from cardsync.domain.sync.service import BlockSyncService
from cardsync.repositories.document_repository import FileDocumentRepository, VaultMediaResolver
from cardsync.repositories.note_store import AnkiConnectNoteStore, NoteStoreInterface

logger = logging.getLogger(__name__)


class NoteStoreConnection:
    """Note store connection manager."""

    _instance: Optional[NoteStoreInterface] = None
    _lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def get_connection(cls) -> NoteStoreInterface:
        """Get or create the note store client."""
        async with cls._lock:
            if cls._instance is None:
                cls._instance = AnkiConnectNoteStore(
                    url=settings.anki_connect_url,
                    api_version=settings.anki_connect_version,
                    timeout=settings.request_timeout,
                    max_retries=settings.max_retries,
                )
                logger.info(f"Note store client created for {settings.anki_connect_url}")
            return cls._instance

    @classmethod
    async def close(cls):
        """Close the note store client."""
        if cls._instance:
            await cls._instance.close()
            cls._instance = None
            logger.info("Note store connection closed")


class DependencyContainer:
    """Singleton container for application-wide dependencies."""

    _sync_service: Optional[BlockSyncService] = None
    _documents: Optional[FileDocumentRepository] = None

    @classmethod
    def get_documents(cls) -> FileDocumentRepository:
        if cls._documents is None:
            cls._documents = FileDocumentRepository(settings.vault_path)
        return cls._documents

    @classmethod
    def create_reconciler(cls, note_store: NoteStoreInterface, source_path: Optional[str] = None) -> Reconciler:
        return Reconciler(
            note_store=note_store,
            templates=NoteTemplates.from_settings(settings),
            vault_name=settings.vault_name,
            source_path=source_path,
            tags=settings.note_tags,
        )

    @classmethod
    async def get_sync_service(cls) -> BlockSyncService:
        """Get or create the BlockSyncService bound to the shared note store."""
        if cls._sync_service is None:
            note_store = await NoteStoreConnection.get_connection()
            cls._sync_service = BlockSyncService(
                reconciler_factory=lambda source_path: cls.create_reconciler(note_store, source_path),
                note_store=note_store,
                documents=cls.get_documents(),
            )
            logger.info("Created new BlockSyncService instance")
        return cls._sync_service

    @classmethod
    def reset(cls) -> None:
        cls._sync_service = None
        cls._documents = None


# FastAPI dependencies
async def get_note_store() -> NoteStoreInterface:
    """Dependency for getting the note store connection."""
    return await NoteStoreConnection.get_connection()


async def get_sync_service() -> BlockSyncService:
    """Dependency for getting the BlockSyncService instance."""
    return await DependencyContainer.get_sync_service()


def get_media_resolver(source_path: Optional[str] = None) -> VaultMediaResolver:
    return VaultMediaResolver(settings.vault_path, source_path)


# Application lifecycle management
async def init_dependencies():
    """Initialize application dependencies."""
    try:
        logger.info("Initializing application dependencies...")
        await NoteStoreConnection.get_connection()
        await DependencyContainer.get_sync_service()
        logger.info("Dependencies initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize dependencies: {e}")
        raise


async def cleanup_dependencies():
    """Cleanup application dependencies."""
    try:
        logger.info("Cleaning up application dependencies...")
        DependencyContainer.reset()
        await NoteStoreConnection.close()
        logger.info("Dependencies cleaned up successfully")
    except Exception as e:
        logger.error(f"Error during dependency cleanup: {e}")
        raise
