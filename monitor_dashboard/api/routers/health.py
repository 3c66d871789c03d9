"""
健康检查 API
"""

from fastapi import APIRouter, Depends

from ...cache import RecomputeCache
from ...dashboard import ServersCard
from ...models import HealthResponse
from ..dependencies import get_view_cache

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health(cache: RecomputeCache = Depends(get_view_cache)):
    """服务状态与缓存情况"""
    entry = cache.peek(ServersCard.cache_key)
    return HealthResponse(
        status="ok",
        entries=len(cache),
        computed_at=entry.computed_at if entry else None,
    )
