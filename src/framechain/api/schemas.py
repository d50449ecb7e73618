from typing import Any, List, Optional

from pydantic import BaseModel, Field


def ok(data: Any = None) -> dict:
    """Success envelope."""
    return {"success": True, "data": data}


class ValidateModeRequest(BaseModel):
    position: int
    mode: str


class SegmentCreate(BaseModel):
    timeline_id: str
    position: int = Field(..., ge=0)
    model_id: str = Field(..., min_length=1)
    duration_sec: Optional[int] = Field(default=None, gt=0)
    generation_mode: Optional[str] = None
    prompt_text: Optional[str] = None
    source_url: Optional[str] = None
    motion_profile: Optional[str] = None
    camera_path: Optional[str] = None
    transition_type: Optional[str] = None


class SegmentPatch(BaseModel):
    prompt_text: Optional[str] = None
    duration_sec: Optional[int] = Field(default=None, gt=0)
    model_id: Optional[str] = Field(default=None, min_length=1)
    motion_profile: Optional[str] = None
    camera_path: Optional[str] = None
    transition_type: Optional[str] = None


class SegmentGenerate(BaseModel):
    override_mode: Optional[str] = None
    override_source_url: Optional[str] = None
    override_prompt: Optional[str] = None


class UpdateModeRequest(BaseModel):
    mode: str
    source_url: Optional[str] = None


class GenerateTimelineRequest(BaseModel):
    timeline_id: str
    first_segment_mode: Optional[str] = None
    first_segment_source: Optional[str] = None


class TimelineCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)


class ReorderRequest(BaseModel):
    order: List[str]


class EnableEnhancementRequest(BaseModel):
    model_id: Optional[str] = None


class QueueEnhancementRequest(BaseModel):
    model_id: Optional[str] = None
    scale_factor: Optional[int] = Field(default=None, gt=0)
    input_url: Optional[str] = None
    target_resolution: Optional[str] = None
    preserve_audio: bool = True
