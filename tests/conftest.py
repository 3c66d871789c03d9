"""
公共测试夹具
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# 添加项目路径到 sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from monitor_dashboard import config as config_module
from monitor_dashboard import database as database_module
from monitor_dashboard.database import Database


NOW = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def ago(seconds: int, now: datetime = NOW) -> int:
    """now 之前 seconds 秒的 Unix 时间戳"""
    return int(now.timestamp()) - seconds


def system_payload(name: str, cpu=5, memory_used=100, memory_total=1000, storage=None) -> dict:
    return {
        "name": name,
        "cpu": cpu,
        "memory_used": memory_used,
        "memory_total": memory_total,
        "storage": storage if storage is not None else [],
    }


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """避免读取工作目录下的 config.yaml，并重置全局单例"""
    monkeypatch.setenv("MONITOR_CONFIG_PATH", str(tmp_path / "missing-config.yaml"))
    config_module.reset_config()
    database_module.reset_db()
    yield
    config_module.reset_config()
    database_module.reset_db()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(tmp_path):
    """创建临时测试数据库"""
    db = Database(str(tmp_path / "test_monitor.db"), window_seconds=600, bucket_count=10)
    db.init_schema()
    return db
