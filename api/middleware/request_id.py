"""
Request ID 中间件
生成或透传追踪ID，并绑定到 structlog 上下文；幂等键一并绑定，便于按键检索日志
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"
    IDEMPOTENCY_HEADER = "Idempotency-Key"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_var.set(request_id)

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        idempotency_key = request.headers.get(self.IDEMPOTENCY_HEADER)
        if idempotency_key:
            context["idempotency_key"] = idempotency_key
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_request_id() -> Optional[str]:
    """获取当前请求的request_id；不在请求上下文中返回None"""
    return request_id_var.get()
