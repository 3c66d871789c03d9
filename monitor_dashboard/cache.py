"""
共享重算缓存

将昂贵的视图计算包装为按周期重算的共享结果：
- 同一个 key 在一个刷新周期内最多计算一次
- 首次计算时所有调用方等待同一次计算完成
- 过期后由一个调用方负责重算，重算期间其它调用方直接拿到上一次的结果（不阻塞）
- 重算失败不替换已有结果，异常只抛给触发重算的调用方；
  下一个周期到来前其它调用方继续拿到上一次的结果，不再重试
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Union

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """一次成功计算的结果，发布后不再修改"""
    payload: Any
    computed_at: datetime
    next_recompute_at: datetime
    duration_ms: float = 0.0


class RecomputeCache:
    """
    重算缓存

    每个 key 一把 asyncio.Lock，保证同一时刻只有一个计算在执行；
    已发布的 CacheEntry 不可变，读取方无需加锁。
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utcnow
        # {key: CacheEntry}
        self._entries: Dict[Hashable, CacheEntry] = {}
        # {key: asyncio.Lock}
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        # 重算失败后的下次重试时间：{key: datetime}
        self._retry_at: Dict[Hashable, datetime] = {}

    async def get(
        self,
        compute_fn: Callable[[], Awaitable[Any]],
        interval: Union[float, timedelta],
        key: Optional[Hashable] = None,
    ) -> CacheEntry:
        """
        获取缓存结果，必要时触发重算

        Args:
            compute_fn: 无参异步计算函数
            interval: 刷新周期（秒或 timedelta）
            key: 缓存键，默认 (compute_fn, interval)

        Returns:
            CacheEntry

        Raises:
            compute_fn 抛出的异常（仅触发重算的调用方会收到）
        """
        if not isinstance(interval, timedelta):
            interval = timedelta(seconds=interval)
        if key is None:
            key = (compute_fn, interval)

        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry, interval):
            return entry

        # 上次重算失败，周期内不再重试
        retry_at = self._retry_at.get(key)
        if entry is not None and retry_at is not None and self._clock() < retry_at:
            return entry

        lock = self._locks.setdefault(key, asyncio.Lock())

        # 已有旧结果且正在重算：直接返回旧结果
        if entry is not None and lock.locked():
            logger.debug(f"Recompute in flight for {key!r}, serving entry from {entry.computed_at.isoformat()}")
            return entry

        async with lock:
            current = self._entries.get(key)
            if current is not None and (current is not entry or self._is_fresh(current, interval)):
                return current
            return await self._recompute(key, compute_fn, interval)

    def peek(self, key: Hashable) -> Optional[CacheEntry]:
        """返回最近一次成功的结果（不触发计算）"""
        return self._entries.get(key)

    def invalidate(self, key: Hashable):
        """丢弃指定 key 的结果，下一次读取会同步重算"""
        self._entries.pop(key, None)
        self._retry_at.pop(key, None)

    def clear(self):
        """丢弃所有结果（应用关闭时调用）"""
        self._entries.clear()
        self._locks.clear()
        self._retry_at.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: CacheEntry, interval: timedelta) -> bool:
        return self._clock() - entry.computed_at < interval

    async def _recompute(
        self,
        key: Hashable,
        compute_fn: Callable[[], Awaitable[Any]],
        interval: timedelta,
    ) -> CacheEntry:
        started = time.perf_counter()
        try:
            payload = await compute_fn()
        except Exception as e:
            self._retry_at[key] = self._clock() + interval
            logger.error(f"Recompute failed for {key!r}, keeping previous entry: {e}", exc_info=True)
            raise

        computed_at = self._clock()
        entry = CacheEntry(
            payload=payload,
            computed_at=computed_at,
            next_recompute_at=computed_at + interval,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        self._entries[key] = entry
        self._retry_at.pop(key, None)

        logger.info(f"Recomputed {key!r} in {entry.duration_ms}ms")
        return entry
