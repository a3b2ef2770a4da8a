"""
错误响应格式定义

成功响应直接返回各路由的业务体（如 ``{"payments": [...]}``），
错误统一渲染为 ``{"error", "code", "type", "request_id"}``。
"""
from typing import Optional
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone


class ErrorBody(BaseModel):
    """错误响应体"""
    error: str
    code: int
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer('timestamp')
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """序列化时间戳为 UTC ISO8601，统一使用 Z 结尾"""
        ts = timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)
        s = ts.isoformat()
        return s.replace("+00:00", "Z")


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> dict:
    """
    创建错误响应

    Args:
        code: 业务状态码
        message: 错误消息
        error_type: 错误类型
        details: 错误详情（调用方负责决定是否对外暴露）
        field: 错误字段
        request_id: 请求ID

    Returns:
        dict: 可直接交给 JSONResponse 的响应体
    """
    body = ErrorBody(
        error=message,
        code=code,
        type=error_type,
        details=details,
        field=field,
        request_id=request_id,
    )
    return body.model_dump(mode="json", exclude_none=True)
