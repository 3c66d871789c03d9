"""
测试 SQLite 数据源

覆盖最新快照写入 / 读取、时序分桶聚合、数据清理，以及与合并流程的衔接。
"""

import json

import pytest

from conftest import NOW, system_payload
from monitor_dashboard.database import format_ts
from monitor_dashboard.merge import build_server_views

NOW_TS = int(NOW.timestamp())


class TestLatestValues:
    """最新快照"""

    def test_record_and_read(self, db):
        db.record_value("system", "web", system_payload("web-01"), NOW_TS - 5)

        snapshots = db.latest("system")

        assert list(snapshots) == ["web"]
        snapshot = snapshots["web"]
        assert snapshot.entity_id == "web"
        assert snapshot.timestamp == NOW_TS - 5
        assert json.loads(snapshot.raw_payload)["name"] == "web-01"

    def test_newer_value_replaces_older(self, db):
        db.record_value("system", "web", system_payload("old"), NOW_TS - 30)
        db.record_value("system", "web", system_payload("new"), NOW_TS - 5)

        snapshot = db.latest("system")["web"]

        assert json.loads(snapshot.raw_payload)["name"] == "new"
        assert snapshot.timestamp == NOW_TS - 5

    def test_older_value_is_ignored(self, db):
        db.record_value("system", "web", system_payload("new"), NOW_TS - 5)
        db.record_value("system", "web", system_payload("late"), NOW_TS - 30)

        snapshot = db.latest("system")["web"]

        assert json.loads(snapshot.raw_payload)["name"] == "new"

    def test_kinds_are_separate(self, db):
        db.record_value("system", "web", system_payload("web"), NOW_TS)
        db.record_value("other", "web", {"x": 1}, NOW_TS)

        assert list(db.latest("system")) == ["web"]
        assert list(db.latest("missing")) == []

    def test_raw_string_stored_verbatim(self, db):
        db.record_value("system", "web", "not json at all", NOW_TS)

        assert db.latest("system")["web"].raw_payload == "not json at all"


class TestSeries:
    """时序分桶聚合（窗口 600 秒，10 个桶）"""

    def test_bucketed_average(self, db):
        db.record_reading("web", "cpu", 10, NOW_TS - 50)
        db.record_reading("web", "cpu", 20, NOW_TS - 40)
        db.record_reading("web", "memory", 2048, NOW_TS)

        bundle = db.series(["cpu", "memory"], "avg", now=NOW_TS)

        cpu = bundle["web"]["cpu"]
        assert len(cpu) == 10
        assert cpu[-2].ts == format_ts(NOW_TS - 60)
        assert cpu[-2].value == 15
        assert cpu[-1].value is None
        assert bundle["web"]["memory"][-1].value == 2048

    def test_points_are_ascending(self, db):
        db.record_reading("web", "cpu", 1, NOW_TS)

        points = db.series(["cpu"], now=NOW_TS)["web"]["cpu"]

        assert [p.ts for p in points] == sorted(p.ts for p in points)

    def test_max_reducer(self, db):
        db.record_reading("web", "cpu", 10, NOW_TS - 50)
        db.record_reading("web", "cpu", 20, NOW_TS - 40)

        bundle = db.series(["cpu"], "max", now=NOW_TS)

        assert bundle["web"]["cpu"][-2].value == 20

    def test_unknown_reducer(self, db):
        with pytest.raises(ValueError):
            db.series(["cpu"], "median", now=NOW_TS)

    def test_readings_outside_window_ignored(self, db):
        db.record_reading("web", "cpu", 10, NOW_TS - 5)
        db.record_reading("old", "cpu", 99, NOW_TS - 10_000)

        bundle = db.series(["cpu"], now=NOW_TS)

        assert "old" not in bundle
        assert all(p.value != 99 for p in bundle["web"]["cpu"])

    def test_metric_without_readings_is_all_empty(self, db):
        db.record_reading("web", "cpu", 10, NOW_TS)

        memory = db.series(["cpu", "memory"], now=NOW_TS)["web"]["memory"]

        assert len(memory) == 10
        assert all(p.value is None for p in memory)


class TestMaintenance:
    """清理与删除"""

    def test_cleanup_old_data(self, db):
        db.record_value("system", "old", system_payload("old"), NOW_TS - 10 * 86400)
        db.record_value("system", "web", system_payload("web"), NOW_TS)
        db.record_reading("old", "cpu", 1, NOW_TS - 10 * 86400)
        db.record_reading("web", "cpu", 1, NOW_TS)

        removed = db.cleanup_old_data(retention_days=7, now=NOW_TS)

        assert removed == 2
        assert list(db.latest("system")) == ["web"]

    def test_remove_entity(self, db):
        db.record_value("system", "web", system_payload("web"), NOW_TS)
        db.record_reading("web", "cpu", 1, NOW_TS)

        assert db.remove_entity("web") is True
        assert db.latest("system") == {}
        assert db.remove_entity("web") is False


class TestPipelineIntegration:
    """数据库数据源 + 合并流程"""

    def test_merge_from_database(self, db):
        db.record_value("system", "b", system_payload("bravo", cpu=20), NOW_TS - 5)
        db.record_value("system", "a", system_payload("alpha", cpu=10), NOW_TS - 50)
        db.record_value("system", "c", system_payload("charlie"), NOW_TS - 500)
        db.record_reading("b", "cpu", 20, NOW_TS)

        views = build_server_views(
            db.latest("system"),
            db.series(["cpu", "memory"], "avg", now=NOW_TS),
            ignore_after=120,
            now=NOW,
        )

        assert [v.name for v in views] == ["alpha", "bravo"]
        assert views[0].cpu_series == ()
        assert views[0].recently_reported is False
        assert views[1].cpu_series[-1].value == 20
        assert views[1].recently_reported is True
