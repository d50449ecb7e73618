from typing import Optional

from fastapi import APIRouter, Depends

from framechain.api.deps import get_services
from framechain.api.schemas import ok
from framechain.container import Services
from framechain.errors import NotFoundError

router = APIRouter(prefix="/models", tags=["models"])


@router.get("")
async def list_models(position: Optional[int] = None, services: Services = Depends(get_services)):
    """Video model capabilities, optionally narrowed to those usable at ``position``."""
    if position is None:
        models = await services.capabilities.list_models()
    else:
        models = await services.capabilities.models_for_position(position)
    return ok([m.model_dump() for m in models])


@router.get("/{model_id}")
async def get_model(
    model_id: str,
    aspect_ratio: Optional[str] = None,
    services: Services = Depends(get_services),
):
    caps = await services.capabilities.get(model_id)
    if caps is None:
        raise NotFoundError(f"Model not found: {model_id}")
    data = caps.model_dump()
    if aspect_ratio is not None:
        data["supportsAspectRatio"] = await services.capabilities.supports_aspect_ratio(
            model_id, aspect_ratio
        )
    return ok(data)
