"""Pydantic models for configuration and pipeline data."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# --- Configuration ---


class DatabaseConfig(BaseModel):
    """Structured store connection."""

    url: str = Field(
        default="sqlite:///./framechain.db", description="databases/SQLAlchemy connection URL"
    )


class GenerationConfig(BaseModel):
    """Video generation provider settings."""

    base_url: str = Field(
        default="http://localhost:8787/api", description="Base URL of the generation provider"
    )
    api_token_env: str = Field(
        default="GENERATION_API_TOKEN", description="Environment variable holding the bearer token"
    )
    timeout_s: float = Field(default=600.0, gt=0.0, description="Request timeout in seconds")
    default_duration_sec: int = Field(default=5, gt=0, description="Segment duration when unset")
    default_mode: Literal[
        "text-to-video", "image-to-video", "video-to-video", "first-frame-to-video"
    ] = Field(default="image-to-video", description="Mode used when a segment does not name one")


class FramesConfig(BaseModel):
    """First/last frame extraction settings."""

    extractor: Literal["http", "storage"] = Field(
        default="storage",
        description="'http' posts to a frame service, 'storage' addresses frames by storage key",
    )
    base_url: Optional[str] = Field(default=None, description="Frame service URL (http extractor)")
    timeout_s: float = Field(default=120.0, gt=0.0, description="Request timeout in seconds")


class EnhancementConfig(BaseModel):
    """Upscaling provider and job settings."""

    base_url: str = Field(
        default="https://api.replicate.com/v1", description="Base URL of the upscaling provider"
    )
    api_token_env: str = Field(
        default="REPLICATE_API_TOKEN", description="Environment variable holding the API token"
    )
    timeout_s: float = Field(default=900.0, gt=0.0, description="Max wait for one prediction")
    poll_interval_s: float = Field(default=2.0, gt=0.0, description="Seconds between status polls")
    default_model: str = Field(default="replicate-esrgan", description="Fallback upscaler model")
    default_scale_factor: int = Field(default=2, gt=0, description="Scale factor when unset")
    process_on_queue: bool = Field(
        default=True, description="Process queued jobs as API background tasks"
    )


class StorageConfig(BaseModel):
    """Blob storage location."""

    root_dir: str = Field(default="media", description="Local directory for stored blobs")
    public_base_url: str = Field(
        default="http://localhost:8000/media", description="Public URL prefix for stored blobs"
    )


class CacheConfig(BaseModel):
    """Registry cache lifetimes."""

    capabilities_ttl_s: int = Field(default=600, ge=0, description="Model capability cache TTL")
    upscalers_ttl_s: int = Field(default=3600, ge=0, description="Upscaler registry cache TTL")


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_file: str = Field(default="logs/framechain.log", description="Log file path")
    console: bool = Field(default=True, description="Also log to stderr")


class ApiConfig(BaseModel):
    """HTTP surface settings."""

    default_user_id: str = Field(
        default="local-user", description="User id assumed when no X-User-Id header is sent"
    )


class FrameChainConfig(BaseModel):
    """Root configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    frames: FramesConfig = Field(default_factory=FramesConfig)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrameChainConfig":
        """Create config from dictionary (e.g., loaded from YAML)."""
        return cls(**data)

    def merge_cli_overrides(self, cli_args: Dict[str, Any]) -> "FrameChainConfig":
        """Return a copy with CLI/env overrides applied.

        Args:
            cli_args: Flat override keys (database_url, log_level, generation_base_url,
                enhancement_base_url, storage_root)

        Returns:
            New FrameChainConfig instance with overrides applied
        """
        data = self.model_dump()

        if cli_args.get("database_url") is not None:
            data["database"]["url"] = cli_args["database_url"]
        if cli_args.get("log_level") is not None:
            data["logging"]["level"] = cli_args["log_level"]
        if cli_args.get("generation_base_url") is not None:
            data["generation"]["base_url"] = cli_args["generation_base_url"]
        if cli_args.get("enhancement_base_url") is not None:
            data["enhancement"]["base_url"] = cli_args["enhancement_base_url"]
        if cli_args.get("storage_root") is not None:
            data["storage"]["root_dir"] = cli_args["storage_root"]

        return FrameChainConfig(**data)


# --- Pipeline data ---


class GenerationMode(str, Enum):
    """How a segment's video is produced.

    Only position 0 may use a mode other than IMAGE_TO_VIDEO; every later
    segment is generated from the previous segment's last frame.
    """

    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"
    VIDEO_TO_VIDEO = "video-to-video"
    FIRST_FRAME_TO_VIDEO = "first-frame-to-video"


class SegmentStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    ERROR = "error"


class TimelineStatus(str, Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    READY = "ready"


class EnhanceStatus(str, Enum):
    """Segment-side projection of the latest enhancement job."""

    NONE = "none"
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class Timeline(BaseModel):
    id: str
    user_id: str
    name: Optional[str] = None
    segment_count: int = 0
    total_duration_sec: int = 0
    status: TimelineStatus = TimelineStatus.DRAFT
    created_at: str
    updated_at: str


class Segment(BaseModel):
    """One ordered unit of a timeline, as stored."""

    id: str
    timeline_id: str
    position: int = Field(..., ge=0)
    is_first_segment: bool
    duration_sec: int = Field(..., gt=0)
    model_id: str
    generation_mode: GenerationMode = GenerationMode.IMAGE_TO_VIDEO
    prompt_text: Optional[str] = None
    source_url: Optional[str] = None
    motion_profile: Optional[str] = None
    camera_path: Optional[str] = None
    transition_type: Optional[str] = None
    status: SegmentStatus = SegmentStatus.PENDING
    video_url: Optional[str] = None
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    generation_time_sec: Optional[float] = None
    error_message: Optional[str] = None
    chained_from_url: Optional[str] = None
    version: int = 0
    lease_token: Optional[str] = None
    enhance_enabled: bool = False
    enhance_model: Optional[str] = None
    enhance_status: EnhanceStatus = EnhanceStatus.NONE
    enhanced_video_url: Optional[str] = None
    enhance_error: Optional[str] = None
    created_at: str
    updated_at: str


class ModeValidation(BaseModel):
    valid: bool
    error: Optional[str] = None


class FrameSet(BaseModel):
    """Frames extracted from a generated video."""

    first_frame_url: str
    last_frame_url: str


class SegmentGenerationRequest(BaseModel):
    """Everything needed to generate one segment."""

    segment_id: Optional[str] = Field(
        default=None, description="Existing segment to (re)generate; a new one is created if unset"
    )
    timeline_id: str
    user_id: str
    position: int = Field(..., ge=0)
    is_first_segment: bool
    generation_mode: GenerationMode = GenerationMode.IMAGE_TO_VIDEO
    prompt_text: Optional[str] = None
    source_image_url: Optional[str] = None
    source_video_url: Optional[str] = None
    previous_last_frame_url: Optional[str] = None
    model_id: str
    duration_sec: int = Field(default=5, gt=0)
    motion_profile: Optional[str] = None
    camera_path: Optional[str] = None
    transition_type: Optional[str] = None


class GenerationResult(BaseModel):
    """Outcome of one segment generation. Failures are data, not exceptions."""

    segment_id: str
    position: int
    generation_mode: GenerationMode
    video_url: Optional[str] = None
    first_frame_url: Optional[str] = None
    last_frame_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    generation_time_sec: float = 0.0
    success: bool
    error: Optional[str] = None
    frame_chained: bool = False
    previous_frame_used: Optional[str] = None

    @classmethod
    def failure(
        cls,
        segment_id: str,
        position: int,
        mode: GenerationMode,
        error: str,
        generation_time_sec: float = 0.0,
    ) -> "GenerationResult":
        return cls(
            segment_id=segment_id,
            position=position,
            generation_mode=mode,
            success=False,
            error=error,
            generation_time_sec=generation_time_sec,
        )


class ModelCapabilities(BaseModel):
    """Registry row describing what a video model accepts."""

    model_id: str
    display_name: Optional[str] = None
    provider: str
    supports_text_to_video: bool = True
    supports_image_to_video: bool = True
    supports_video_to_video: bool = False
    supports_first_frame: bool = True
    supported_aspects: List[str] = Field(default_factory=lambda: ["16:9"])
    min_duration_sec: int = 1
    max_duration_sec: int = 10
    quality_score: int = 0
    is_active: bool = True


class DurationCheck(BaseModel):
    valid: bool
    adjusted_duration: Optional[int] = None
    error: Optional[str] = None
