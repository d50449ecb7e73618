"""Frame chaining between consecutive segments.

Segment N+1 is generated from the last frame of segment N. The helpers here
decide which upstream frame feeds a segment; ChainState carries that frame
forward through a single orchestration run.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import ChainBrokenError
from .models import GenerationResult, Segment, SegmentStatus
from .modes import get_available_modes


def resolve_chain_input(segments: Sequence[Segment], index: int) -> Optional[str]:
    """Return the image URL that must feed ``segments[index]``.

    Args:
        segments: Timeline segments ordered by position
        index: Index of the segment about to be generated

    Returns:
        None for the first segment, else the previous segment's last frame URL

    Raises:
        ChainBrokenError: previous segment is not generated or has no last frame
    """
    if index == 0:
        return None
    previous = segments[index - 1]
    if previous.status != SegmentStatus.GENERATED or not previous.last_frame_url:
        raise ChainBrokenError(
            f"Segment at position {index} chains from segment {previous.id}, "
            "which has no generated last frame"
        )
    return previous.last_frame_url


def previous_segment_id(segments: Sequence[Segment], index: int) -> Optional[str]:
    if index <= 0:
        return None
    return segments[index - 1].id


def describe_chain(segments: Sequence[Segment]) -> List[Dict[str, Any]]:
    """Serialize segments with their chain relationships for listings."""
    described = []
    for index, segment in enumerate(segments):
        item = segment.model_dump(mode="json", exclude={"lease_token"})
        item["availableModes"] = [m.value for m in get_available_modes(index)]
        item["isFirstSegment"] = index == 0
        item["frameChaining"] = index > 0
        item["previousSegmentId"] = previous_segment_id(segments, index)
        described.append(item)
    return described


class CancellationToken:
    """Cooperative cancel flag checked by the orchestrator between segments."""

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Generation cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ChainState:
    """Accumulator owned by one orchestration run."""

    previous_last_frame_url: Optional[str] = None
    previous_segment_id: Optional[str] = None
    steps: int = 0

    def advance(self, result: GenerationResult) -> None:
        self.previous_last_frame_url = result.last_frame_url
        self.previous_segment_id = result.segment_id
        self.steps += 1
