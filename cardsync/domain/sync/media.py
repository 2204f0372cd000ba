import base64
import logging
import posixpath
import re
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import unquote

from cardsync.repositories.note_store import NoteStoreInterface

logger = logging.getLogger(__name__)

MediaResolver = Callable[[str], Awaitable[Optional[bytes]]]

IMAGE_PATTERN = re.compile(r"!\[\[([^|\]]+)(?:\|[^\]]+)?\]\]|!\[[^\]]*\]\(([^)]+)\)")
REMOTE_SCHEMES = ("http://", "https://")
MISSING_IMAGE = "[Image not found: {name}]"


def reference_name(match: re.Match) -> Optional[str]:
    """Return the file name an image embed points to."""
    if match.group(1):
        return match.group(1).strip() or None
    path = match.group(2).strip()
    if path.startswith(REMOTE_SCHEMES):
        return path
    name = posixpath.basename(path.replace("\\", "/")).strip()
    return unquote(name) or None


def stored_filename(name: str) -> str:
    """Media file name for a reference; folders are folded into the name so equal basenames stay distinct."""
    return name.replace("\\", "/").strip("/").replace("/", "_")


class MediaUploader:
    """Uploads images referenced by card fields, once per file name.

    One instance belongs to one reconciliation call; the cache is not shared.
    """

    def __init__(self, note_store: NoteStoreInterface, resolver: Optional[MediaResolver]):
        self.note_store = note_store
        self.resolver = resolver
        self._stored: Dict[str, Optional[str]] = {}

    async def _store(self, name: str) -> Optional[str]:
        if name in self._stored:
            return self._stored[name]

        stored: Optional[str] = None
        data = await self.resolver(name) if self.resolver else None
        if data is None:
            logger.warning(f"Image not found: {name}")
        else:
            filename = stored_filename(name)
            stored = await self.note_store.store_media_file(filename, base64.b64encode(data).decode("ascii"))
            logger.debug(f"Uploaded image {name} as {stored}")

        self._stored[name] = stored
        return stored

    async def rewrite(self, text: str) -> str:
        """Replace image embeds with ``<img>`` tags pointing at uploaded files."""
        if not text:
            return ""

        names = [reference_name(match) for match in IMAGE_PATTERN.finditer(text)]
        for name in names:
            if name and not name.startswith(REMOTE_SCHEMES):
                await self._store(name)

        def replace(match: re.Match) -> str:
            name = reference_name(match)
            if not name:
                return match.group(0)
            if name.startswith(REMOTE_SCHEMES):
                return f'<img src="{name}">'
            stored = self._stored.get(name)
            if stored is None:
                return MISSING_IMAGE.format(name=name)
            return f'<img src="{stored}">'

        return IMAGE_PATTERN.sub(replace, text)
