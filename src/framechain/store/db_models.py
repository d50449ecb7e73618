from datetime import datetime, timezone

from sqlalchemy import Column, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Timeline(Base):
    __tablename__ = "timelines"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    segment_count = Column(Integer, nullable=False, default=0)
    total_duration_sec = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="draft")  # draft | generating | ready
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class Segment(Base):
    __tablename__ = "segments"
    id = Column(String, primary_key=True)
    timeline_id = Column(String, ForeignKey("timelines.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    is_first_segment = Column(Integer, nullable=False, default=0)
    duration_sec = Column(Integer, nullable=False, default=5)
    model_id = Column(String, nullable=False)
    generation_mode = Column(String, nullable=False, default="image-to-video")
    prompt_text = Column(Text, nullable=True)
    source_url = Column(String, nullable=True)
    motion_profile = Column(String, nullable=True)
    camera_path = Column(String, nullable=True)
    transition_type = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    video_url = Column(String, nullable=True)
    first_frame_url = Column(String, nullable=True)
    last_frame_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    generation_time_sec = Column(Float, nullable=True)
    error_message = Column(Text, nullable=True)
    chained_from_url = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=0)
    lease_token = Column(String, nullable=True)
    # Read-only projection of the latest enhancement job
    enhance_enabled = Column(Integer, nullable=False, default=0)
    enhance_model = Column(String, nullable=True)
    enhance_status = Column(String, nullable=False, default="none")
    enhanced_video_url = Column(String, nullable=True)
    enhance_error = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class EnhancementJob(Base):
    __tablename__ = "enhancement_jobs"
    id = Column(String, primary_key=True)
    segment_id = Column(String, ForeignKey("segments.id"), nullable=False, index=True)
    timeline_id = Column(String, ForeignKey("timelines.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    model_id = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    input_url = Column(String, nullable=False)
    output_url = Column(String, nullable=True)
    scale_factor = Column(Integer, nullable=False, default=2)
    target_resolution = Column(String, nullable=True)
    preserve_audio = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default="queued")
    progress = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(String, nullable=True)
    completed_at = Column(String, nullable=True)
    processing_time_sec = Column(Float, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class EnhancementTransition(Base):
    """Audit log row written with every enhancement job state change."""

    __tablename__ = "enhancement_transitions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, nullable=False, index=True)
    from_state = Column(String, nullable=True)
    to_state = Column(String, nullable=False)
    timestamp = Column(String, nullable=False)
    error_snippet = Column(String, nullable=True)  # first 200 chars


class UpscalerModel(Base):
    __tablename__ = "upscaler_models"
    id = Column(String, primary_key=True)
    provider = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    scale_factors = Column(String, nullable=False, default="[2]")  # JSON list
    supports_video = Column(Integer, nullable=False, default=1)
    quality_score = Column(Integer, nullable=False, default=0)
    cost_per_second = Column(Float, nullable=False, default=0.0)
    credits_per_use = Column(Integer, nullable=False, default=0)
    is_active = Column(Integer, nullable=False, default=1)
    priority = Column(Integer, nullable=False, default=0)


class ModelCapability(Base):
    __tablename__ = "model_capabilities"
    model_id = Column(String, primary_key=True)
    display_name = Column(String, nullable=True)
    provider = Column(String, nullable=False)
    supports_text_to_video = Column(Integer, nullable=False, default=1)
    supports_image_to_video = Column(Integer, nullable=False, default=1)
    supports_video_to_video = Column(Integer, nullable=False, default=0)
    supports_first_frame = Column(Integer, nullable=False, default=1)
    supported_aspects = Column(String, nullable=False, default='["16:9"]')  # JSON list
    min_duration_sec = Column(Integer, nullable=False, default=1)
    max_duration_sec = Column(Integer, nullable=False, default=10)
    quality_score = Column(Integer, nullable=False, default=0)
    is_active = Column(Integer, nullable=False, default=1)
