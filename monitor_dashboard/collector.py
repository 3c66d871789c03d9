"""
采集循环

每隔 collector.interval 秒拉取所有上报节点的系统数据：
- 原始 JSON 原样写入 latest_values（校验在合并流程中进行）
- cpu / memory_used 为数值时写入 readings，供时序聚合
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from .config import TargetConfig, get_config
from .dashboard import SNAPSHOT_KIND
from .database import Database, get_db

logger = logging.getLogger(__name__)

# 原始字段 -> 时序指标名
READING_FIELDS = {
    "cpu": "cpu",
    "memory_used": "memory",
}


async def fetch_target_payload(client: httpx.AsyncClient, target: TargetConfig) -> Any:
    """
    拉取单个节点的系统数据

    Raises:
        httpx.HTTPError: 请求失败或返回非 2xx
        ValueError: 响应不是合法 JSON
    """
    headers = {}
    if target.token:
        headers["Authorization"] = f"Bearer {target.token}"

    response = await client.get(target.url, headers=headers)
    response.raise_for_status()
    return response.json()


def record_payload(db: Database, entity_id: str, payload: Any, ts: int) -> int:
    """
    写入一次上报

    Returns:
        写入的读数条数
    """
    db.record_value(SNAPSHOT_KIND, entity_id, payload, ts)

    if not isinstance(payload, dict):
        logger.warning(f"Payload from {entity_id} is not an object, readings skipped")
        return 0

    recorded = 0
    for field, metric in READING_FIELDS.items():
        value = payload.get(field)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            db.record_reading(entity_id, metric, value, ts)
            recorded += 1
    return recorded


async def collect_single_target(client: httpx.AsyncClient, db: Database, target: TargetConfig) -> bool:
    """采集单个节点，失败只记录日志"""
    try:
        payload = await fetch_target_payload(client, target)
        record_payload(db, target.entity_id, payload, int(time.time()))
        return True
    except Exception as e:
        logger.warning(f"Failed to collect {target.entity_id} from {target.url}: {e}")
        return False


async def collect_once(
    client: httpx.AsyncClient,
    db: Database,
    targets: List[TargetConfig],
) -> Dict[str, bool]:
    """并发采集所有节点，返回 {entity_id: 是否成功}"""
    results = await asyncio.gather(*[
        collect_single_target(client, db, target)
        for target in targets
    ])
    return {target.entity_id: ok for target, ok in zip(targets, results)}


async def run_collector(db: Optional[Database] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    """
    运行采集循环

    每隔 interval 秒拉取所有配置的节点。
    """
    config = get_config()
    interval = config.collector.interval
    timeout = config.collector.timeout
    targets = config.collector.targets
    db = db or get_db()

    logger.info(f"Starting collector loop (targets={len(targets)}, interval={interval}s, timeout={timeout}s)")

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        while True:
            try:
                if targets:
                    results = await collect_once(client, db, targets)
                    logger.debug(f"Collected {sum(results.values())}/{len(targets)} targets")
            except asyncio.CancelledError:
                logger.info("Collector task cancelled")
                raise
            except Exception as e:
                logger.error(f"Collector loop error: {e}", exc_info=True)

            await asyncio.sleep(interval)
