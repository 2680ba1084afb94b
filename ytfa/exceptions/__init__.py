"""异常处理模块

提供 TFA 异常类、全局异常处理器等功能。

使用示例:
    from ytfa.exceptions import Err, register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)

    raise Err.mismatch()
"""

from .exceptions import (
    Err,
    ErrorCode,
    ErrorCodeType,
    BusinessException,
    TfaException,
    ConfigurationError,
    RateLimited,
    ChallengeMismatch,
    ValidationFailed,
    NoFallbackAvailable,
    SetupRequired,
)

from .handlers import (
    register_exception_handlers,
    business_exception_handler,
    http_exception_handler,
    general_exception_handler,
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "TfaException",
    "ConfigurationError",
    "RateLimited",
    "ChallengeMismatch",
    "ValidationFailed",
    "NoFallbackAvailable",
    "SetupRequired",
    "register_exception_handlers",
    "business_exception_handler",
    "http_exception_handler",
    "general_exception_handler",
]
