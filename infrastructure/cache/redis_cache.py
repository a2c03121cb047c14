"""Redis连接管理"""
from __future__ import annotations

import socket
from typing import Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


async def create_redis_client(url: Optional[str] = None, *, ping: bool = True) -> aioredis.Redis:
    """创建Redis客户端；生命周期由调用方（服务容器）负责"""
    redis_url = url or settings.redis.url
    if not redis_url:
        raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

    # 构建跨平台 keepalive 选项（若可用）
    keepalive_opts = {}
    if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
        keepalive_opts = {
            socket.TCP_KEEPIDLE: 1,
            socket.TCP_KEEPINTVL: 1,
            socket.TCP_KEEPCNT: 3,
        }

    client = aioredis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.redis.max_connections,
        socket_keepalive=True,
        socket_keepalive_options=keepalive_opts,
    )
    if ping:
        await client.ping()
    logger.info("redis_client_initialized", url=redis_url)
    return client


async def close_redis_client(client: Optional[aioredis.Redis]) -> None:
    """关闭Redis连接"""
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("redis_client_closed")
    except Exception as exc:
        logger.error("redis_client_close_failed", error=str(exc))
