"""
数据清理任务

每天在 retention.cleanup_hour 点（UTC）清理过期的读数与快照。
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import get_config
from .database import Database, get_db

logger = logging.getLogger(__name__)


def seconds_until_cleanup(now: datetime, cleanup_hour: int) -> float:
    """计算距离下次清理的秒数"""
    if now.hour >= cleanup_hour:
        # 今天的清理时间已过，等明天
        next_cleanup = (now + timedelta(days=1)).replace(
            hour=cleanup_hour, minute=0, second=0, microsecond=0
        )
    else:
        next_cleanup = now.replace(hour=cleanup_hour, minute=0, second=0, microsecond=0)
    return (next_cleanup - now).total_seconds()


async def run_cleanup(db: Optional[Database] = None):
    """
    运行数据清理任务

    每天在指定时间清理过期数据。
    """
    config = get_config()
    cleanup_hour = config.retention.cleanup_hour
    retention_days = config.retention.days
    db = db or get_db()

    logger.info(f"Starting cleanup task (hour={cleanup_hour}, retention={retention_days}d)")

    while True:
        try:
            wait_seconds = seconds_until_cleanup(datetime.now(timezone.utc), cleanup_hour)
            logger.info(f"Next cleanup in {wait_seconds:.0f}s")

            await asyncio.sleep(wait_seconds)

            removed = db.cleanup_old_data(retention_days)
            logger.info(f"Cleanup completed: removed {removed} rows older than {retention_days} days")

        except asyncio.CancelledError:
            logger.info("Cleanup task cancelled")
            raise
        except Exception as e:
            logger.error(f"Cleanup error: {e}", exc_info=True)
            await asyncio.sleep(3600)  # 出错后等 1 小时
