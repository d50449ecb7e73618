import asyncio
import logging
from pathlib import Path
from typing import Optional

from .backends import BlobStorage

logger = logging.getLogger(__name__)


def enhancement_key(kind: str, timeline_id: str, segment_id: str) -> str:
    """Key for raw or enhanced segment videos: ``segments/{kind}/{timeline}/{segment}.mp4``."""
    if kind not in ("raw", "enhanced"):
        raise ValueError(f"Unknown enhancement video kind: {kind}")
    return f"segments/{kind}/{timeline_id}/{segment_id}.mp4"


class LocalBlobStorage(BlobStorage):
    """Blob storage on the local filesystem, served under ``public_base_url``."""

    def __init__(self, root_dir: str, public_base_url: str):
        self.root = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        path = self.path_for(key)
        await asyncio.to_thread(self._write, path, data)
        logger.debug("Stored %d bytes at %s", len(data), key)
        return self.public_url(key)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
