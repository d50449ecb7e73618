from typing import Optional

from fastapi import Header, Request

from framechain.container import Services
from framechain.errors import NotFoundError
from framechain.models import Segment


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_id(request: Request, x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity from X-User-Id; authentication happens upstream."""
    return x_user_id or request.app.state.services.config.api.default_user_id


async def owned_segment(services: Services, segment_id: str, user_id: str) -> Segment:
    segment = await services.segments.get_by_id(segment_id)
    if segment is None:
        raise NotFoundError(f"Segment not found: {segment_id}")
    await services.timelines.require(segment.timeline_id, user_id)
    return segment
