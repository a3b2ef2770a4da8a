"""领域层业务异常定义，供领域与基础设施使用。

所有可预期的失败（参数、权限、支付渠道、对账）都以 BusinessException 的子类抛出，
由 core.exceptions 统一映射为 HTTP 状态码与错误响应体；领域层不依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类

    details 仅在 4xx 响应中对外输出，5xx 只写日志。
    """

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    """实体不变量被破坏（如车位数为负）"""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
