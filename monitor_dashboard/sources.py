"""
外部协作方接口

- SnapshotSource: 提供每个节点最新的原始上报
- SeriesAggregator: 提供窗口化的指标时序
- ViewerNotifier: 向已连接的前端推送数据

默认实现见 database.Database（前两者）与 notifier.WebSocketNotifier。
"""

from typing import Any, Dict, Protocol, Sequence

from .models import SeriesBundle, Snapshot


class SnapshotSource(Protocol):
    def latest(self, kind: str) -> Dict[str, Snapshot]:
        ...


class SeriesAggregator(Protocol):
    def series(self, metric_names: Sequence[str], reducer: str = "avg") -> SeriesBundle:
        ...


class ViewerNotifier(Protocol):
    async def notify(self, event_name: str, payload: Any) -> None:
        ...
