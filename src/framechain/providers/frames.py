from ..models import FrameSet
from .backends import BlobStorage, FrameExtractor


class StorageFrameExtractor(FrameExtractor):
    """Addresses frames by storage key.

    For blob stores that derive the boundary frames of an uploaded video
    themselves; the frames are not fetched, only their public URLs returned.
    """

    def __init__(self, storage: BlobStorage):
        self.storage = storage

    async def extract(self, video_url: str, first_frame_key: str, last_frame_key: str) -> FrameSet:
        return FrameSet(
            first_frame_url=self.storage.public_url(first_frame_key),
            last_frame_url=self.storage.public_url(last_frame_key),
        )
