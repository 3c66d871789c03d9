"""
异常定义
"""

from typing import Any, Dict, List, Optional


class MonitorDashboardError(Exception):
    """所有业务异常的基类"""


class SnapshotParseError(MonitorDashboardError):
    """
    快照原始数据无法解析

    对本次重算是致命的：合并流程直接中止，缓存保留上一次成功的结果。
    """

    def __init__(self, entity_id: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.entity_id = entity_id
        self.errors = errors or []
        super().__init__(self._format())

    @property
    def fields(self) -> List[str]:
        """出错字段列表（按出现顺序去重）"""
        seen = []
        for err in self.errors:
            field = err.get("field", "")
            if field not in seen:
                seen.append(field)
        return seen

    def _format(self) -> str:
        if not self.errors:
            return f"Malformed snapshot payload for entity '{self.entity_id}'"
        details = "; ".join(
            f"{err.get('field') or '<payload>'}: {err.get('message', 'invalid')}"
            for err in self.errors
        )
        return f"Malformed snapshot payload for entity '{self.entity_id}': {details}"


class DurationParseError(MonitorDashboardError, ValueError):
    """时长表达式无法解析（非致命，调用方视为未配置阈值）"""
