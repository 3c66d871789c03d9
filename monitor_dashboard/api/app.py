"""
FastAPI 应用配置

配置 CORS、路由注册，以及共享重算缓存的创建与释放。
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..cache import RecomputeCache
from ..config import get_config
from .routers import health, servers

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - API 路由
    - 共享重算缓存（app.state.view_cache，随应用创建，关闭时清空）
    """
    config = get_config()

    app = FastAPI(
        title="Monitor Dashboard",
        description="集群服务器健康视图 API",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.view_cache = RecomputeCache()

    # 注册路由
    app.include_router(servers.router)
    app.include_router(health.router)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Monitor Dashboard starting up...")

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.view_cache.clear()
        logger.info("Monitor Dashboard shutting down...")

    return app
