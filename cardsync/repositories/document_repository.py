import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles

from ..core.exceptions.base import ConfigurationError, ResourceNotFoundError

logger = logging.getLogger(__name__)


class DocumentRepositoryInterface(ABC):
    """Abstract base class for reading and writing whole documents."""

    @abstractmethod
    async def read_text(self, path: str) -> str:
        pass

    @abstractmethod
    async def write_text(self, path: str, text: str) -> None:
        pass


class FileDocumentRepository(DocumentRepositoryInterface):
    """Documents stored as UTF-8 files below a root directory."""

    def __init__(self, root: str = "."):
        self.root = Path(root)
        self._file_lock = asyncio.Lock()

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root / candidate

    async def read_text(self, path: str) -> str:
        """
        Read a document.

        Raises:
            ResourceNotFoundError: If the file does not exist
        """
        file_path = self.resolve(path)
        if not file_path.is_file():
            raise ResourceNotFoundError("document", str(path))

        # newline="" keeps CRLF documents byte-identical on write-back
        async with aiofiles.open(file_path, mode="r", encoding="utf-8", newline="") as file:
            return await file.read()

    async def write_text(self, path: str, text: str) -> None:
        file_path = self.resolve(path)
        async with self._file_lock:
            async with aiofiles.open(file_path, mode="w", encoding="utf-8", newline="") as file:
                await file.write(text)
        logger.info(f"Document written: {file_path}")


class VaultMediaResolver:
    """Loads media referenced from notes, by relative path or by file name anywhere in the vault."""

    def __init__(self, vault_root: str, source_path: Optional[str] = None):
        self.vault_root = Path(vault_root)
        if not self.vault_root.is_dir():
            raise ConfigurationError(f"Vault directory does not exist: {vault_root}", {"vault_path": vault_root})
        self.source_dir = Path(source_path).parent if source_path else None

    def _find(self, name: str) -> Optional[Path]:
        candidates = [self.vault_root / name]
        if self.source_dir is not None:
            candidates.insert(0, self.vault_root / self.source_dir / name)

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        file_name = Path(name).name
        return next((match for match in sorted(self.vault_root.rglob(file_name)) if match.is_file()), None)

    async def __call__(self, name: str) -> Optional[bytes]:
        path = self._find(name)
        if path is None:
            return None
        async with aiofiles.open(path, mode="rb") as file:
            return await file.read()
