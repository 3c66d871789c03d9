"""
快照合并与过期过滤

将每个节点的最新快照与 cpu / memory 时序合并为展示记录：
- 原始数据按 SystemPayload 校验，任何节点数据不合法都会使本次重算失败
- 超过过期阈值未上报的节点直接剔除
- 结果按名称升序（稳定排序）
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .exceptions import SnapshotParseError
from .models import SeriesBundle, ServerView, Snapshot, SystemPayload

# 最近上报判定窗口（秒）
RECENTLY_REPORTED_SECONDS = 30

SERIES_METRICS = ["cpu", "memory"]


def parse_system_payload(entity_id: str, raw_payload: Union[str, bytes, Dict[str, Any]]) -> SystemPayload:
    """
    解析并校验节点上报的原始数据

    Raises:
        SnapshotParseError: JSON 不合法，或缺少 / 非法字段（列出全部出错字段）
    """
    if isinstance(raw_payload, (str, bytes)):
        try:
            raw_payload = json.loads(raw_payload)
        except (TypeError, ValueError) as e:
            raise SnapshotParseError(entity_id, [{"field": "", "message": f"invalid JSON: {e}"}]) from e

    if not isinstance(raw_payload, dict):
        raise SnapshotParseError(
            entity_id,
            [{"field": "", "message": f"expected an object, got {type(raw_payload).__name__}"}],
        )

    try:
        return SystemPayload.model_validate(raw_payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise SnapshotParseError(entity_id, errors) from e


def build_server_view(
    snapshot: Snapshot,
    graphs: SeriesBundle,
    ignore_after: Optional[float],
    now: datetime,
) -> Optional[ServerView]:
    """
    构建单个节点的展示记录

    Returns:
        ServerView；节点已超过过期阈值时返回 None
    """
    values = parse_system_payload(snapshot.entity_id, snapshot.raw_payload)

    updated_at = datetime.fromtimestamp(snapshot.timestamp, tz=timezone.utc)
    age = now - updated_at

    if ignore_after is not None and age.total_seconds() > ignore_after:
        return None

    series = graphs.get(snapshot.entity_id) or {}

    return ServerView(
        name=values.name,
        cpu_current=values.cpu,
        cpu_series=tuple(series.get("cpu") or ()),
        memory_used=values.memory_used,
        memory_total=values.memory_total,
        memory_series=tuple(series.get("memory") or ()),
        storage=tuple(values.storage),
        updated_at=updated_at,
        recently_reported=age <= timedelta(seconds=RECENTLY_REPORTED_SECONDS),
    )


def build_server_views(
    snapshots: Mapping[str, Snapshot],
    graphs: SeriesBundle,
    ignore_after: Optional[float] = None,
    now: Optional[datetime] = None,
) -> List[ServerView]:
    """
    合并所有节点快照与时序

    Args:
        snapshots: {entity_id: Snapshot}，每个节点仅保留最新一条
        graphs: {entity_id: {"cpu": [...], "memory": [...]}}，缺失视为空序列
        ignore_after: 过期阈值（秒），None 表示不过滤；恰好等于阈值的节点保留
        now: 当前时间（UTC），默认取系统时间

    Returns:
        按 name 升序排列的 ServerView 列表

    Raises:
        SnapshotParseError: 任意节点原始数据不合法
    """
    if now is None:
        now = datetime.now(timezone.utc)

    views = []
    for snapshot in snapshots.values():
        view = build_server_view(snapshot, graphs, ignore_after, now)
        if view is not None:
            views.append(view)

    return sorted(views, key=lambda view: view.name)
