"""Abstract interfaces for the external collaborators of the pipeline.

The generation service, the enhancement service and the registries only
talk to these interfaces. Production clients live in ``providers.http``,
``providers.storage`` and ``providers.cache``; tests substitute fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..enhancement.models import UpscalerModel
    from ..models import FrameSet, GenerationMode


class GenerationProvider(ABC):
    """AI video model endpoint."""

    @abstractmethod
    async def generate(self, model_id: str, mode: "GenerationMode", payload: Dict[str, Any]) -> str:
        """Produce one video.

        Args:
            model_id: Video model to use
            mode: Generation mode (selects the endpoint)
            payload: Mode-specific request body

        Returns:
            URL of the generated video

        Raises:
            ProviderError: request failed or the response carried no video URL
        """
        pass


class FrameExtractor(ABC):
    """Derives the first and last frame images of a generated video."""

    @abstractmethod
    async def extract(self, video_url: str, first_frame_key: str, last_frame_key: str) -> "FrameSet":
        """Extract both boundary frames.

        Args:
            video_url: Generated video
            first_frame_key: Storage key for the first frame image
            last_frame_key: Storage key for the last frame image

        Returns:
            FrameSet with public URLs of both frames
        """
        pass


class EnhancementProvider(ABC):
    """Upscaling service."""

    @abstractmethod
    async def enhance(
        self,
        model: "UpscalerModel",
        input_url: str,
        scale_factor: int,
        target_resolution: Optional[str] = None,
        preserve_audio: bool = True,
    ) -> str:
        """Upscale a video and return the URL of the result."""
        pass


class BlobStorage(ABC):
    """Object store holding frames and videos."""

    @staticmethod
    def key(kind: str, user_id: str, owner_id: str, filename: str) -> str:
        """Storage key convention: ``{kind}/{user_id}/{owner_id}/{filename}``."""
        return f"{kind}/{user_id}/{owner_id}/{filename}"

    @abstractmethod
    def public_url(self, key: str) -> str:
        pass

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        pass


class Cache(ABC):
    """Ephemeral key/value cache with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass
