"""
数据模型定义

包括：
- 上报原始数据的结构化校验模型
- 快照 / 时序数据模型
- 合并后的服务器视图与 API 响应模型
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_integer(value: Any) -> Any:
    """浮点数截断为整数（与上报端的整型语义一致），布尔值拒绝"""
    if isinstance(value, bool):
        raise ValueError("must be a number, not a boolean")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return int(value)
    return value


# =============================================================================
# 上报原始数据（snapshot.raw_payload 的结构）
# =============================================================================

class StorageInfo(BaseModel):
    """磁盘挂载点信息"""
    model_config = ConfigDict(frozen=True)

    directory: str
    total: int
    used: int

    @field_validator("total", "used", mode="before")
    @classmethod
    def coerce_integers(cls, value: Any) -> Any:
        return _coerce_integer(value)


class SystemPayload(BaseModel):
    """节点上报的系统数据（所有字段必填）"""
    name: str
    cpu: int
    memory_used: int
    memory_total: int
    storage: List[StorageInfo]

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> Any:
        """数字主机名按字符串处理"""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("cpu", "memory_used", "memory_total", mode="before")
    @classmethod
    def coerce_integers(cls, value: Any) -> Any:
        return _coerce_integer(value)


# =============================================================================
# 外部数据源模型
# =============================================================================

class Snapshot(BaseModel):
    """节点最新一次上报（旧快照由数据源丢弃）"""
    model_config = ConfigDict(frozen=True)

    entity_id: str
    raw_payload: Union[str, Dict[str, Any]]
    timestamp: int  # Unix 时间戳（秒）


class SeriesPoint(BaseModel):
    """时序数据点（空桶 value 为 None）"""
    model_config = ConfigDict(frozen=True)

    ts: str
    value: Optional[float] = None


# {entity_id: {metric: [SeriesPoint, ...]}}
SeriesBundle = Dict[str, Dict[str, List[SeriesPoint]]]


# =============================================================================
# 合并后的视图
# =============================================================================

class ServerView(BaseModel):
    """单个节点的展示记录"""
    model_config = ConfigDict(frozen=True)

    name: str
    cpu_current: int
    cpu_series: Tuple[SeriesPoint, ...] = ()
    memory_used: int
    memory_total: int
    memory_series: Tuple[SeriesPoint, ...] = ()
    storage: Tuple[StorageInfo, ...] = ()
    updated_at: datetime
    recently_reported: bool


class ServersViewResponse(BaseModel):
    """服务器视图响应（GET /api/servers，同时也是推送事件的负载）"""
    entities: List[ServerView] = Field(default_factory=list)
    computed_at: datetime
    next_recompute_at: datetime
    duration_ms: float = 0.0
    stale: bool = False  # 本次重算失败，返回的是上一次成功的结果
    last_error: Optional[str] = None


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    entries: int = 0
    computed_at: Optional[datetime] = None
