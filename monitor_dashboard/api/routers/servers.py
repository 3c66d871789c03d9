"""
服务器视图 API

- GET /api/servers: 拉取完整视图（不推送）
- WS  /api/servers/ws: 推送会话，每个刷新周期推送一次 servers-chart-update
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from ...dashboard import ServersCard
from ...models import ServersViewResponse
from ...notifier import WebSocketNotifier
from ..dependencies import get_servers_card

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/servers", tags=["servers"])


@router.get("", response_model=ServersViewResponse)
async def list_servers(card: ServersCard = Depends(get_servers_card)):
    """
    获取集群服务器视图

    视图在每个刷新周期内只计算一次；重算失败时返回上一次成功的结果（stale=true）。
    """
    try:
        return await card.render()
    except Exception as e:
        logger.error(f"Servers view unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Servers view unavailable: {e}"
        )


@router.websocket("/ws")
async def servers_stream(websocket: WebSocket, card: ServersCard = Depends(get_servers_card)):
    """
    服务器视图推送

    连接后立即推送一次，之后每个刷新周期推送一次；
    客户端发送任意消息会触发立即推送。
    """
    await websocket.accept()
    notifier = WebSocketNotifier(websocket)
    logger.info(f"Viewer connected: {websocket.client}")

    try:
        while True:
            try:
                await card.render(notifier=notifier)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.warning(f"Servers view unavailable for push: {e}")
                await websocket.send_json({"event": "servers-error", "data": {"detail": str(e)}})

            try:
                await asyncio.wait_for(websocket.receive_text(), timeout=card.refresh_interval)
            except asyncio.TimeoutError:
                pass
    except WebSocketDisconnect:
        logger.info(f"Viewer disconnected: {websocket.client}")
