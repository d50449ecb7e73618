"""External collaborators: interfaces and production clients."""

from .backends import BlobStorage, Cache, EnhancementProvider, FrameExtractor, GenerationProvider
from .cache import MemoryCache
from .frames import StorageFrameExtractor
from .storage import LocalBlobStorage, enhancement_key

__all__ = [
    "BlobStorage",
    "Cache",
    "EnhancementProvider",
    "FrameExtractor",
    "GenerationProvider",
    "MemoryCache",
    "StorageFrameExtractor",
    "LocalBlobStorage",
    "enhancement_key",
]
