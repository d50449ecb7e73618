"""Default registry rows for upscalers and video model capabilities."""

import json
from typing import Any, Dict, List

from databases import Database
from sqlalchemy import insert, select

from . import db_models as tables

UPSCALER_SEEDS: List[Dict[str, Any]] = [
    {
        "id": "replicate-esrgan",
        "provider": "replicate",
        "display_name": "Real-ESRGAN Video",
        "description": "High-quality video upscaling using Real-ESRGAN",
        "scale_factors": [2, 4],
        "quality_score": 9,
        "cost_per_second": 0.05,
        "credits_per_use": 10,
        "priority": 100,
    },
    {
        "id": "replicate-esrgan-anime",
        "provider": "replicate",
        "display_name": "Real-ESRGAN Anime",
        "description": "Optimized for anime and cartoon content",
        "scale_factors": [2, 4],
        "quality_score": 9,
        "cost_per_second": 0.05,
        "credits_per_use": 10,
        "priority": 90,
    },
    {
        "id": "topaz-video-ai",
        "provider": "topaz",
        "display_name": "Topaz Video AI",
        "description": "Professional video enhancement suite",
        "scale_factors": [2, 4, 8],
        "quality_score": 10,
        "cost_per_second": 0.10,
        "credits_per_use": 20,
        "priority": 95,
    },
    {
        "id": "google-frame-interp",
        "provider": "google",
        "display_name": "Google FILM",
        "description": "Frame interpolation for smoother video",
        "scale_factors": [2],
        "quality_score": 8,
        "cost_per_second": 0.03,
        "credits_per_use": 5,
        "priority": 80,
    },
    {
        "id": "stability-upscale",
        "provider": "stability",
        "display_name": "Stable Video Upscale",
        "description": "Stability AI video enhancement",
        "scale_factors": [2, 4],
        "quality_score": 8,
        "cost_per_second": 0.04,
        "credits_per_use": 8,
        "priority": 85,
    },
    {
        "id": "nightmareai-hd",
        "provider": "replicate",
        "display_name": "NightmareAI HD",
        "description": "High-detail enhancement for realistic content",
        "scale_factors": [2, 4],
        "quality_score": 9,
        "cost_per_second": 0.06,
        "credits_per_use": 12,
        "priority": 75,
    },
    {
        "id": "codeformer-face",
        "provider": "replicate",
        "display_name": "CodeFormer Face",
        "description": "Specialized face restoration and enhancement",
        "scale_factors": [2],
        "quality_score": 9,
        "cost_per_second": 0.04,
        "credits_per_use": 8,
        "priority": 70,
    },
]

# (model_id, display_name, provider, t2v, i2v, v2v, first_frame, aspects, min_s, max_s, quality)
_CAPABILITY_ROWS = [
    ("sora", "Sora", "openai", 1, 1, 0, 1, ["16:9", "9:16", "1:1", "4:3", "21:9"], 5, 20, 10),
    ("sora-turbo", "Sora Turbo", "openai", 1, 1, 0, 1, ["16:9", "9:16", "1:1"], 3, 10, 8),
    ("veo-2", "Veo 2", "google", 1, 1, 1, 1, ["16:9", "9:16", "1:1", "4:5"], 4, 10, 10),
    ("veo-2-flash", "Veo 2 Flash", "google", 1, 1, 0, 1, ["16:9", "9:16"], 2, 6, 8),
    ("kling-2.5-i2v-pro", "Kling 2.5 Pro", "kling", 1, 1, 0, 1, ["16:9", "9:16", "1:1"], 2, 10, 9),
    ("wan-2.5-i2v", "Wan 2.5 I2V", "replicate", 0, 1, 0, 1, ["16:9", "9:16"], 1, 5, 7),
    ("runway-gen3", "Runway Gen-3", "runway", 1, 1, 0, 1, ["16:9", "9:16", "1:1"], 4, 10, 9),
    ("stable-video-diffusion", "Stable Video Diffusion", "stability", 0, 1, 0, 1, ["16:9"], 2, 4, 6),
    ("luma-dream-machine", "Luma Dream Machine", "luma", 1, 1, 0, 1, ["16:9", "9:16", "1:1"], 2, 5, 8),
]

CAPABILITY_SEEDS: List[Dict[str, Any]] = [
    {
        "model_id": model_id,
        "display_name": name,
        "provider": provider,
        "supports_text_to_video": t2v,
        "supports_image_to_video": i2v,
        "supports_video_to_video": v2v,
        "supports_first_frame": first_frame,
        "supported_aspects": aspects,
        "min_duration_sec": min_s,
        "max_duration_sec": max_s,
        "quality_score": quality,
    }
    for (model_id, name, provider, t2v, i2v, v2v, first_frame, aspects, min_s, max_s, quality) in _CAPABILITY_ROWS
]


async def seed_defaults(database: Database) -> Dict[str, int]:
    """Insert registry rows that are not present yet.

    Returns:
        Number of rows inserted per table
    """
    inserted = {"upscaler_models": 0, "model_capabilities": 0}

    existing = {
        dict(r._mapping)["id"]
        for r in await database.fetch_all(select(tables.UpscalerModel.id))
    }
    for seed in UPSCALER_SEEDS:
        if seed["id"] in existing:
            continue
        values = dict(seed, scale_factors=json.dumps(seed["scale_factors"]))
        await database.execute(
            insert(tables.UpscalerModel).values(supports_video=1, is_active=1, **values)
        )
        inserted["upscaler_models"] += 1

    existing = {
        dict(r._mapping)["model_id"]
        for r in await database.fetch_all(select(tables.ModelCapability.model_id))
    }
    for seed in CAPABILITY_SEEDS:
        if seed["model_id"] in existing:
            continue
        values = dict(seed, supported_aspects=json.dumps(seed["supported_aspects"]))
        await database.execute(insert(tables.ModelCapability).values(is_active=1, **values))
        inserted["model_capabilities"] += 1

    return inserted
