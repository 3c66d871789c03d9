"""
服务器视图卡片

组合快照数据源、时序数据源与重算缓存：
- compute(): 读取数据并执行合并流程（昂贵，只由缓存调用）
- render(): 从缓存取视图；给定 notifier 时额外推送一次
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from .cache import CacheEntry, RecomputeCache, utcnow
from .duration import resolve_ignore_after
from .merge import SERIES_METRICS, build_server_views
from .models import ServersViewResponse, ServerView
from .sources import SeriesAggregator, SnapshotSource, ViewerNotifier

logger = logging.getLogger(__name__)

SNAPSHOT_KIND = "system"
SERVERS_CHART_EVENT = "servers-chart-update"


class ServersCard:
    """集群服务器健康视图"""

    cache_key = "servers"

    def __init__(
        self,
        snapshot_source: SnapshotSource,
        series_aggregator: SeriesAggregator,
        cache: RecomputeCache,
        ignore_after: Any = None,
        refresh_interval: float = 5.0,
        compute_timeout: Optional[float] = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            snapshot_source: 快照数据源
            series_aggregator: 时序数据源
            cache: 共享重算缓存（由应用创建并持有）
            ignore_after: 过期阈值，整数秒或时长表达式；无法解析时不过滤
            refresh_interval: 重算周期（秒）
            compute_timeout: 读取每个数据源的超时（秒），None 表示不限制
            clock: 当前时间函数（UTC），测试时注入
        """
        self.snapshot_source = snapshot_source
        self.series_aggregator = series_aggregator
        self.cache = cache
        self.ignore_after = resolve_ignore_after(ignore_after)
        self.refresh_interval = refresh_interval
        self.compute_timeout = compute_timeout
        self._clock = clock or utcnow

    async def _fetch(self, func: Callable, *args):
        # 数据源是同步实现（SQLite），放到线程中执行并加超时保护
        return await asyncio.wait_for(asyncio.to_thread(func, *args), self.compute_timeout)

    async def compute(self) -> Tuple[ServerView, ...]:
        """读取最新快照与时序并合并（每个刷新周期最多执行一次）"""
        snapshots = await self._fetch(self.snapshot_source.latest, SNAPSHOT_KIND)
        graphs = await self._fetch(self.series_aggregator.series, SERIES_METRICS, "avg")

        views = build_server_views(snapshots, graphs, self.ignore_after, self._clock())
        logger.debug(f"Merged {len(views)}/{len(snapshots)} servers")
        return tuple(views)

    async def render(self, notifier: Optional[ViewerNotifier] = None) -> ServersViewResponse:
        """
        获取服务器视图

        本次请求触发的重算失败时，返回上一次成功的结果并标记 stale；
        没有任何可用结果时异常继续向上抛出。

        Args:
            notifier: 推送通道，仅 WebSocket 会话传入
        """
        try:
            entry = await self.cache.get(self.compute, self.refresh_interval, key=self.cache_key)
            response = self._to_response(entry)
        except Exception as e:
            entry = self.cache.peek(self.cache_key)
            if entry is None:
                raise
            logger.warning(f"Serving servers view from {entry.computed_at.isoformat()} after failed recompute: {e}")
            response = self._to_response(entry, stale=True, last_error=str(e))

        if notifier is not None:
            await notifier.notify(SERVERS_CHART_EVENT, response)

        return response

    def _to_response(
        self,
        entry: CacheEntry,
        stale: bool = False,
        last_error: Optional[str] = None,
    ) -> ServersViewResponse:
        return ServersViewResponse(
            entities=list(entry.payload),
            computed_at=entry.computed_at,
            next_recompute_at=entry.next_recompute_at,
            duration_ms=entry.duration_ms,
            stale=stale,
            last_error=last_error,
        )
