"""Position-dependent legality of generation modes.

The first segment of a timeline may be produced from text, an image, a
video, or a forced first frame. Every later segment continues from the
previous segment's last frame, so only image-to-video is legal there.
"""

from typing import Any, Dict, List, Optional, Union

from .errors import InvalidRequestError
from .models import GenerationMode, ModeValidation

FIRST_SEGMENT_ONLY_ERROR = (
    "Only the first segment can use text-to-video, video-to-video, or first-frame modes. "
    "Subsequent segments must use image-to-video with frame chaining."
)

MODE_DESCRIPTORS: List[Dict[str, Any]] = [
    {
        "id": GenerationMode.TEXT_TO_VIDEO.value,
        "name": "Text to Video",
        "description": "Generate video from text prompt only",
        "availableFor": "first_segment",
        "requiresInput": ["prompt"],
    },
    {
        "id": GenerationMode.IMAGE_TO_VIDEO.value,
        "name": "Image to Video",
        "description": "Animate an image (uses last frame from previous segment)",
        "availableFor": "all",
        "requiresInput": ["prompt", "image"],
        "default": True,
    },
    {
        "id": GenerationMode.VIDEO_TO_VIDEO.value,
        "name": "Video to Video",
        "description": "Transform or extend an existing video",
        "availableFor": "first_segment",
        "requiresInput": ["prompt", "video"],
    },
    {
        "id": GenerationMode.FIRST_FRAME_TO_VIDEO.value,
        "name": "First Frame to Video",
        "description": "Use an image as the exact first frame",
        "availableFor": "first_segment",
        "requiresInput": ["prompt", "image"],
    },
]


def parse_mode(mode: Union[str, GenerationMode, None]) -> Optional[GenerationMode]:
    """Return the GenerationMode for a raw value, or None if it is not a known mode."""
    if isinstance(mode, GenerationMode):
        return mode
    try:
        return GenerationMode(mode)
    except ValueError:
        return None


def validate_generation_mode(position: int, mode: Union[str, GenerationMode]) -> ModeValidation:
    parsed = parse_mode(mode)
    if parsed is None:
        return ModeValidation(valid=False, error=f"Unknown generation mode: {mode}")
    if position < 0:
        return ModeValidation(valid=False, error="Segment position must be zero or greater")
    if position > 0 and parsed != GenerationMode.IMAGE_TO_VIDEO:
        return ModeValidation(valid=False, error=FIRST_SEGMENT_ONLY_ERROR)
    return ModeValidation(valid=True)


def get_available_modes(position: int) -> List[GenerationMode]:
    if position == 0:
        return list(GenerationMode)
    return [GenerationMode.IMAGE_TO_VIDEO]


def get_mode_descriptors(position: Optional[int] = None) -> List[Dict[str, Any]]:
    """Descriptors for all modes, or only those legal at ``position``."""
    if position is None:
        return [dict(d) for d in MODE_DESCRIPTORS]
    allowed = {m.value for m in get_available_modes(position)}
    return [dict(d) for d in MODE_DESCRIPTORS if d["id"] in allowed]


def ensure_valid_mode(position: int, mode: Union[str, GenerationMode]) -> GenerationMode:
    """Parse and validate ``mode`` for ``position``, raising InvalidRequestError if illegal."""
    validation = validate_generation_mode(position, mode)
    if not validation.valid:
        raise InvalidRequestError(validation.error)
    return parse_mode(mode)
