"""Read-only registry of what each video model supports.

Rows are cached in the ephemeral cache. A model without a registry row is
treated permissively for aspect ratio and duration, but an explicit mode
check against a missing row fails.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, List, Optional

from databases import Database
from sqlalchemy import select

from .errors import InvalidRequestError
from .models import DurationCheck, GenerationMode, ModelCapabilities
from .store import db_models as tables
from .store.repositories import row_to_dict

if TYPE_CHECKING:
    from .providers.backends import Cache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "capabilities:"
CACHE_ALL_KEY = "capabilities:all"


def _from_row(row) -> ModelCapabilities:
    data = row_to_dict(row)
    data["supported_aspects"] = json.loads(data.get("supported_aspects") or "[]")
    return ModelCapabilities(**data)


class ModelCapabilitiesService:
    def __init__(self, database: Database, cache: Optional["Cache"] = None, ttl_s: int = 600):
        self.db = database
        self.cache = cache
        self.ttl_s = ttl_s

    async def get(self, model_id: str) -> Optional[ModelCapabilities]:
        cache_key = f"{CACHE_PREFIX}{model_id}"
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return ModelCapabilities(**cached)

        row = await self.db.fetch_one(
            select(tables.ModelCapability).where(
                tables.ModelCapability.model_id == model_id, tables.ModelCapability.is_active == 1
            )
        )
        if row is None:
            return None
        caps = _from_row(row)
        if self.cache is not None:
            await self.cache.set(cache_key, caps.model_dump(), self.ttl_s)
        return caps

    async def list_models(self) -> List[ModelCapabilities]:
        if self.cache is not None:
            cached = await self.cache.get(CACHE_ALL_KEY)
            if cached is not None:
                return [ModelCapabilities(**c) for c in cached]

        rows = await self.db.fetch_all(
            select(tables.ModelCapability)
            .where(tables.ModelCapability.is_active == 1)
            .order_by(tables.ModelCapability.quality_score.desc(), tables.ModelCapability.model_id)
        )
        models = [_from_row(r) for r in rows]
        if self.cache is not None:
            await self.cache.set(CACHE_ALL_KEY, [m.model_dump() for m in models], self.ttl_s)
        return models

    async def supports_mode(self, model_id: str, mode: GenerationMode) -> bool:
        caps = await self.get(model_id)
        if caps is None:
            return False
        mode = GenerationMode(mode)
        if mode == GenerationMode.TEXT_TO_VIDEO:
            return caps.supports_text_to_video
        if mode == GenerationMode.IMAGE_TO_VIDEO:
            return caps.supports_image_to_video
        if mode == GenerationMode.VIDEO_TO_VIDEO:
            return caps.supports_video_to_video
        return caps.supports_first_frame

    async def supports_aspect_ratio(self, model_id: str, aspect: str) -> bool:
        caps = await self.get(model_id)
        if caps is None:
            return True
        return aspect in caps.supported_aspects

    async def validate_duration(self, model_id: str, duration_sec: int) -> DurationCheck:
        caps = await self.get(model_id)
        if caps is None:
            return DurationCheck(valid=True, adjusted_duration=duration_sec)
        if duration_sec < caps.min_duration_sec:
            return DurationCheck(
                valid=False,
                adjusted_duration=caps.min_duration_sec,
                error=f"Duration must be at least {caps.min_duration_sec}s for this model",
            )
        if duration_sec > caps.max_duration_sec:
            return DurationCheck(
                valid=False,
                adjusted_duration=caps.max_duration_sec,
                error=f"Duration cannot exceed {caps.max_duration_sec}s for this model",
            )
        return DurationCheck(valid=True, adjusted_duration=duration_sec)

    async def models_for_position(self, position: int) -> List[ModelCapabilities]:
        """Models usable at a position; later segments need image-to-video."""
        models = await self.list_models()
        if position == 0:
            return models
        return [m for m in models if m.supports_image_to_video]

    async def check_generation(self, model_id: str, mode: GenerationMode, duration_sec: int) -> None:
        """Raise InvalidRequestError if the registry explicitly rejects this generation."""
        caps = await self.get(model_id)
        if caps is None:
            logger.debug("No capability row for %s, allowing generation", model_id)
            return
        if not await self.supports_mode(model_id, mode):
            raise InvalidRequestError(
                f"Model {model_id} does not support {GenerationMode(mode).value}"
            )
        check = await self.validate_duration(model_id, duration_sec)
        if not check.valid:
            raise InvalidRequestError(check.error)
