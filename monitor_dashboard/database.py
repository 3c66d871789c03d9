"""
数据库操作抽象层

封装所有 SQLite 操作：
- latest_values: 每个节点每类数据的最新一条原始上报（快照数据源）
- readings: 指标读数，按时间桶聚合后作为时序数据源
"""

import json
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

from .config import get_config
from .models import SeriesBundle, SeriesPoint, Snapshot


SCHEMA = """
CREATE TABLE IF NOT EXISTS latest_values (
    kind TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    value TEXT NOT NULL,
    ts INTEGER NOT NULL,
    PRIMARY KEY (kind, entity_id)
);

CREATE TABLE IF NOT EXISTS readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_id TEXT NOT NULL,
    metric TEXT NOT NULL,
    ts INTEGER NOT NULL,
    value REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_readings_metric_ts ON readings(metric, ts);
"""

# 聚合类型 -> SQL 函数
REDUCERS = {
    "avg": "AVG",
    "average": "AVG",
    "max": "MAX",
    "min": "MIN",
    "sum": "SUM",
}


def format_ts(epoch: int) -> str:
    """Unix 时间戳 -> ISO 8601（UTC）"""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Database:
    """数据库操作类"""

    def __init__(
        self,
        db_path: Optional[str] = None,
        timeout: Optional[int] = None,
        window_seconds: Optional[int] = None,
        bucket_count: Optional[int] = None,
    ):
        """
        初始化数据库

        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: SQLite 锁等待超时（秒）
            window_seconds: 时序窗口长度，默认取 dashboard.window_minutes
            bucket_count: 时序桶数量，默认取 dashboard.bucket_count
        """
        config = get_config()
        if db_path is None:
            db_path = config.database.path

        self.db_path = Path(db_path)
        self.timeout = timeout if timeout is not None else config.database.timeout
        self.window_seconds = window_seconds or config.dashboard.window_minutes * 60
        self.bucket_count = bucket_count or config.dashboard.bucket_count

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with db.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """建表（幂等）"""
        with self.get_conn() as conn:
            conn.executescript(SCHEMA)

    # =========================================================================
    # 写入
    # =========================================================================

    def record_value(self, kind: str, entity_id: str, value: Union[str, Dict[str, Any]], ts: int):
        """
        写入节点最新原始上报

        同一 (kind, entity_id) 只保留一条；较旧的时间戳不会覆盖较新的记录。
        """
        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)

        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO latest_values (kind, entity_id, value, ts)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(kind, entity_id) DO UPDATE SET
                    value = excluded.value,
                    ts = excluded.ts
                WHERE excluded.ts >= latest_values.ts
            """, (kind, entity_id, value, int(ts)))

    def record_reading(self, entity_id: str, metric: str, value: float, ts: int):
        """写入一条指标读数"""
        with self.get_conn() as conn:
            conn.execute("""
                INSERT INTO readings (entity_id, metric, ts, value)
                VALUES (?, ?, ?, ?)
            """, (entity_id, metric, int(ts), float(value)))

    def remove_entity(self, entity_id: str) -> bool:
        """
        删除节点的所有数据

        Returns:
            是否删除了任何记录
        """
        with self.get_conn() as conn:
            removed = conn.execute("DELETE FROM latest_values WHERE entity_id = ?", (entity_id,)).rowcount
            removed += conn.execute("DELETE FROM readings WHERE entity_id = ?", (entity_id,)).rowcount
            return removed > 0

    # =========================================================================
    # 快照数据源
    # =========================================================================

    def latest(self, kind: str) -> Dict[str, Snapshot]:
        """获取某类数据每个节点的最新上报：{entity_id: Snapshot}"""
        with self.get_conn() as conn:
            cursor = conn.execute("""
                SELECT entity_id, value, ts
                FROM latest_values
                WHERE kind = ?
                ORDER BY entity_id
            """, (kind,))
            return {
                row["entity_id"]: Snapshot(
                    entity_id=row["entity_id"],
                    raw_payload=row["value"],
                    timestamp=row["ts"],
                )
                for row in cursor.fetchall()
            }

    # =========================================================================
    # 时序数据源
    # =========================================================================

    def series(
        self,
        metric_names: Sequence[str],
        reducer: str = "avg",
        window_seconds: Optional[int] = None,
        bucket_count: Optional[int] = None,
        now: Optional[int] = None,
    ) -> SeriesBundle:
        """
        按时间桶聚合指标读数

        Args:
            metric_names: 指标名称列表（如 ["cpu", "memory"]）
            reducer: 聚合类型（avg, max, min, sum）
            window_seconds: 窗口长度
            bucket_count: 桶数量
            now: 当前 Unix 时间戳

        Returns:
            {entity_id: {metric: [SeriesPoint, ...]}}，每个指标固定 bucket_count 个点，
            空桶 value 为 None；没有任何读数的节点不出现在结果中
        """
        func = REDUCERS.get(reducer)
        if func is None:
            raise ValueError(f"Unsupported reducer: {reducer}")

        metric_names = list(metric_names)
        if not metric_names:
            return {}

        window_seconds = window_seconds or self.window_seconds
        bucket_count = bucket_count or self.bucket_count
        bucket_size = max(1, window_seconds // bucket_count)
        if now is None:
            now = int(time.time())

        last_bucket = (now // bucket_size) * bucket_size
        first_bucket = last_bucket - (bucket_count - 1) * bucket_size
        buckets = [first_bucket + i * bucket_size for i in range(bucket_count)]

        placeholders = ", ".join("?" for _ in metric_names)
        with self.get_conn() as conn:
            cursor = conn.execute(f"""
                SELECT entity_id, metric, (ts / ?) * ? AS bucket, {func}(value) AS value
                FROM readings
                WHERE metric IN ({placeholders}) AND ts >= ? AND ts < ?
                GROUP BY entity_id, metric, bucket
            """, (bucket_size, bucket_size, *metric_names, first_bucket, last_bucket + bucket_size))
            rows = cursor.fetchall()

        # {entity_id: {metric: {bucket: value}}}
        values: Dict[str, Dict[str, Dict[int, float]]] = {}
        for row in rows:
            values.setdefault(row["entity_id"], {}).setdefault(row["metric"], {})[row["bucket"]] = row["value"]

        result: SeriesBundle = {}
        for entity_id, metrics in values.items():
            result[entity_id] = {
                metric: [
                    SeriesPoint(ts=format_ts(bucket), value=metrics.get(metric, {}).get(bucket))
                    for bucket in buckets
                ]
                for metric in metric_names
            }
        return result

    # =========================================================================
    # 数据清理
    # =========================================================================

    def cleanup_old_data(self, retention_days: int = 7, now: Optional[int] = None) -> int:
        """
        清理过期数据

        Args:
            retention_days: 保留天数

        Returns:
            删除的记录数
        """
        if now is None:
            now = int(time.time())
        cutoff = now - retention_days * 86400

        with self.get_conn() as conn:
            removed = conn.execute("DELETE FROM readings WHERE ts < ?", (cutoff,)).rowcount
            removed += conn.execute("DELETE FROM latest_values WHERE ts < ?", (cutoff,)).rowcount
            return removed


# 全局数据库实例（延迟加载）
_db: Optional[Database] = None


def get_db() -> Database:
    """获取全局数据库实例"""
    global _db
    if _db is None:
        _db = Database()
        _db.init_schema()
    return _db


def reset_db():
    """重置数据库实例（主要用于测试）"""
    global _db
    _db = None
