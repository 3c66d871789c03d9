"""
Monitor Dashboard - 集群健康视图服务

负责：
- 定时拉取各上报节点的系统快照并入库
- 合并最新快照与窗口化时序，过滤长时间未上报的节点
- 通过共享重算缓存，在每个刷新周期内最多计算一次视图
- 提供 REST / WebSocket API 给前端
"""

__version__ = "1.0.0"
__author__ = "AI-B"
