"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from fastapi import Depends
from starlette.requests import HTTPConnection

from ..cache import RecomputeCache
from ..config import get_config
from ..dashboard import ServersCard
from ..database import Database, get_db


async def get_database() -> Database:
    """获取数据库实例"""
    return get_db()


async def get_view_cache(connection: HTTPConnection) -> RecomputeCache:
    """获取应用持有的共享重算缓存（HTTP 与 WebSocket 通用）"""
    return connection.app.state.view_cache


async def get_servers_card(
    db: Database = Depends(get_database),
    cache: RecomputeCache = Depends(get_view_cache),
) -> ServersCard:
    """
    构建服务器视图卡片

    卡片本身无状态，按请求创建；共享状态只在缓存中。
    """
    config = get_config().dashboard
    return ServersCard(
        snapshot_source=db,
        series_aggregator=db,
        cache=cache,
        ignore_after=config.ignore_after,
        refresh_interval=config.refresh_interval,
        compute_timeout=config.compute_timeout,
    )
