"""
测试服务器视图 API

覆盖：
- GET /api/servers 返回排序后的视图与缓存时间
- 重算失败时返回上一次成功的视图（stale）
- 过期阈值配置
- WS /api/servers/ws 推送 servers-chart-update
"""

import time

import pytest
import yaml
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import system_payload
from monitor_dashboard import config as config_module
from monitor_dashboard.api.app import create_app
from monitor_dashboard.api.dependencies import get_database
from monitor_dashboard.api.routers.servers import servers_stream
from monitor_dashboard.dashboard import SERVERS_CHART_EVENT
from monitor_dashboard.database import Database


@pytest.fixture
def configure(tmp_path, monkeypatch):
    """写入临时 config.yaml 并重新加载"""
    def _configure(**dashboard):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump({"dashboard": dashboard}), encoding="utf-8")
        monkeypatch.setenv("MONITOR_CONFIG_PATH", str(config_path))
        config_module.reset_config()
    return _configure


@pytest.fixture
def client(db: Database):
    """创建测试客户端（使用临时数据库）"""
    app = create_app()

    async def _override_db():
        return db

    app.dependency_overrides[get_database] = _override_db
    return TestClient(app)


def record(db: Database, entity_id: str, seconds_ago: int = 0, **values):
    payload = system_payload(values.pop("name", entity_id), **values)
    db.record_value("system", entity_id, payload, int(time.time()) - seconds_ago)


class TestServersAPI:
    """GET /api/servers"""

    def test_empty_fleet(self, client):
        response = client.get("/api/servers")
        assert response.status_code == 200

        data = response.json()
        assert data["entities"] == []
        assert data["stale"] is False
        assert "computed_at" in data
        assert "next_recompute_at" in data

    def test_entities_sorted(self, client, db):
        record(db, "z", name="zeta", cpu=7)
        record(db, "a", name="alpha", cpu=3, storage=[{"directory": "/", "total": 100, "used": 40}])

        data = client.get("/api/servers").json()

        assert [e["name"] for e in data["entities"]] == ["alpha", "zeta"]
        alpha = data["entities"][0]
        assert alpha["cpu_current"] == 3
        assert alpha["memory_used"] == 100
        assert alpha["memory_total"] == 1000
        assert alpha["storage"] == [{"directory": "/", "total": 100, "used": 40}]
        assert alpha["cpu_series"] == []
        assert alpha["recently_reported"] is True

    def test_series_included(self, client, db):
        record(db, "web")
        db.record_reading("web", "cpu", 42, int(time.time()))

        entity = client.get("/api/servers").json()["entities"][0]

        assert len(entity["cpu_series"]) == 10
        assert 42 in [p["value"] for p in entity["cpu_series"][-2:]]

    def test_cached_within_interval(self, client, db):
        record(db, "a")

        first = client.get("/api/servers").json()
        record(db, "b")
        second = client.get("/api/servers").json()

        assert second["computed_at"] == first["computed_at"]
        assert [e["name"] for e in second["entities"]] == ["a"]

    def test_ignore_after_from_config(self, configure, db):
        configure(ignore_after="1m")
        app = create_app()

        async def _override_db():
            return db

        app.dependency_overrides[get_database] = _override_db
        client = TestClient(app)

        record(db, "fresh", seconds_ago=5)
        record(db, "gone", seconds_ago=120)

        data = client.get("/api/servers").json()

        assert [e["name"] for e in data["entities"]] == ["fresh"]

    def test_failed_recompute_serves_last_good(self, configure, db):
        configure(refresh_interval=0)
        app = create_app()

        async def _override_db():
            return db

        app.dependency_overrides[get_database] = _override_db
        client = TestClient(app)

        record(db, "a")
        first = client.get("/api/servers").json()

        db.record_value("system", "broken", '{"name": "broken"}', int(time.time()))
        response = client.get("/api/servers")

        assert response.status_code == 200
        data = response.json()
        assert data["stale"] is True
        assert "broken" in data["last_error"]
        assert data["computed_at"] == first["computed_at"]
        assert [e["name"] for e in data["entities"]] == ["a"]

    def test_no_view_available(self, client, db):
        db.record_value("system", "broken", "garbage", int(time.time()))

        response = client.get("/api/servers")

        assert response.status_code == 503
        assert "broken" in response.json()["detail"]


class TestServersStream:
    """WS /api/servers/ws"""

    def test_push_on_connect(self, client, db):
        record(db, "web", name="web-01")

        with client.websocket_connect("/api/servers/ws") as websocket:
            message = websocket.receive_json()

        assert message["event"] == SERVERS_CHART_EVENT
        assert [e["name"] for e in message["data"]["entities"]] == ["web-01"]

    def test_push_on_client_message(self, client, db):
        record(db, "web")

        with client.websocket_connect("/api/servers/ws") as websocket:
            first = websocket.receive_json()
            websocket.send_text("refresh")
            second = websocket.receive_json()

        assert second["event"] == SERVERS_CHART_EVENT
        assert second["data"]["computed_at"] == first["data"]["computed_at"]

    def test_error_event_when_no_view(self, client, db):
        db.record_value("system", "broken", "garbage", int(time.time()))

        with client.websocket_connect("/api/servers/ws") as websocket:
            message = websocket.receive_json()

        assert message["event"] == "servers-error"
        assert "broken" in message["data"]["detail"]


class TestHealthAPI:
    """GET /api/health"""

    def test_health_before_and_after_view(self, client, db):
        data = client.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["entries"] == 0
        assert data["computed_at"] is None

        client.get("/api/servers")

        data = client.get("/api/health").json()
        assert data["entries"] == 1
        assert data["computed_at"] is not None


class ClosedWebSocket:
    """推送时客户端已断开的连接"""

    client = ("127.0.0.1", 50000)

    def __init__(self):
        self.sent = []

    async def accept(self):
        pass

    async def send_json(self, data):
        self.sent.append(data)
        raise WebSocketDisconnect(code=1001)


class PushingCard:
    refresh_interval = 5

    async def render(self, notifier=None):
        await notifier.notify(SERVERS_CHART_EVENT, {"entities": []})


@pytest.mark.asyncio
class TestServersStreamDisconnect:
    """推送过程中断开"""

    async def test_disconnect_during_push_ends_session(self):
        websocket = ClosedWebSocket()

        await servers_stream(websocket, PushingCard())

        # 不再向已关闭的连接发送 servers-error
        assert [message["event"] for message in websocket.sent] == [SERVERS_CHART_EVENT]
