"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/monitor.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = ["http://localhost:8080", "http://127.0.0.1:8080"]


class DashboardConfig(BaseModel):
    """服务器视图配置"""
    refresh_interval: float = 5.0  # 视图重算周期（秒）
    ignore_after: Optional[Union[int, str]] = None  # 超过该时长未上报的节点隐藏，如 60 / "2m" / "1h30m"
    compute_timeout: float = 10.0  # 单次读取快照/时序的超时（秒）
    window_minutes: int = 60  # 时序窗口
    bucket_count: int = 60  # 时序桶数量


class TargetConfig(BaseModel):
    """上报节点配置"""
    entity_id: str
    url: str
    token: Optional[str] = None


class CollectorConfig(BaseModel):
    """采集配置"""
    enabled: bool = True
    interval: int = 5
    timeout: float = 2.0
    targets: List[TargetConfig] = Field(default_factory=list)


class RetentionConfig(BaseModel):
    """数据保留策略"""
    days: int = 7
    cleanup_hour: int = 3


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 MONITOR_CONFIG_PATH
    3. 默认路径 config.yaml

    配置文件中的相对路径（数据库、日志文件）按配置文件所在目录解析。
    """
    if config_path is None:
        config_path = os.environ.get("MONITOR_CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
            if raw_config:
                base_dir = config_file.resolve().parent

                def _resolve_path(value: Optional[str]) -> Optional[str]:
                    if not value:
                        return value
                    path = Path(value)
                    if path.is_absolute():
                        return str(path)
                    return str((base_dir / path).resolve())

                database = raw_config.get("database") or {}
                if database.get("path"):
                    database["path"] = _resolve_path(database["path"])

                logging_section = raw_config.get("logging") or {}
                if logging_section.get("file"):
                    logging_section["file"] = _resolve_path(logging_section["file"])

                return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
