"""
WebSocket 推送

仅在前端以 WebSocket 会话连接时使用；普通 HTTP 请求直接返回完整视图。
"""

import logging
from typing import Any

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class WebSocketNotifier:
    """把事件推送给单个 WebSocket 连接"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def notify(self, event_name: str, payload: Any) -> None:
        await self.websocket.send_json({
            "event": event_name,
            "data": jsonable_encoder(payload),
        })
        logger.debug(f"Pushed {event_name} to {self.websocket.client}")
