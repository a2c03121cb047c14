"""
统一响应信封 ``{code, message, data, error}``

成功时 error 为空；失败时 data 为空，error.type 为错误分类（如 INSUFFICIENT_FUNDS），
error.status_code 冗余写入 HTTP 状态码，便于经由消息队列等非 HTTP 通道的调用方判断。
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_serializer

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorDetail(BaseModel):
    type: str
    status_code: Optional[int] = None
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    status_code: Optional[int] = None,
) -> Response:
    error = ErrorDetail(
        type=error_type,
        status_code=status_code,
        details=details,
        field=field,
        request_id=request_id,
    )
    return Response(code=code, message=message, error=error)


def exception_response(exc: BusinessException, status_code: int, request_id: Optional[str] = None) -> Response:
    """由业务异常构造错误信封（支付错误的 type 即其错误分类）"""
    return error_response(
        code=exc.code,
        message=exc.message,
        error_type=exc.error_type,
        details=exc.details,
        field=exc.field,
        request_id=request_id,
        status_code=status_code,
    )
