"""全局异常处理器

提供 FastAPI 全局异常处理器，自动将异常转换为统一的 JSON 响应格式。
"""

import os
import traceback

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ytfa.log import get_logger
from ytfa.response import ResponseStatus
from .exceptions import BusinessException, TfaException

# 创建日志记录器
logger = get_logger()


def _is_debug() -> bool:
    return os.getenv("DEBUG", "false").lower() == "true"


async def business_exception_handler(
    request: Request,
    exc: BusinessException
) -> JSONResponse:
    """业务异常处理器

    处理所有继承自 BusinessException 的异常，转换为统一的 JSON 响应。
    TFA 流程中的可重试异常（验证码错误、频率限制）只记 INFO，
    其余记 WARNING。

    Args:
        request: FastAPI 请求对象
        exc: 业务异常实例

    Returns:
        JSON 响应
    """
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.info if isinstance(exc, TfaException) and exc.retryable else logger.warning
    log(
        f"Business exception occurred: {exc.code} - {exc.message}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "error_code": exc.code,
            "status_code": exc.status_code,
        }
    )

    content = {
        "status": ResponseStatus.ERROR.value,
        "message": exc.message,
        "msg_details": exc.details,
        "data": {}
    }

    if exc.code:
        content["error_code"] = exc.code

    # 如果有额外信息且在调试模式，添加到响应中
    if _is_debug() and exc.extra:
        content["debug_info"] = exc.extra

    headers = None
    wait_minutes = exc.extra.get("wait_minutes")
    if exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS and wait_minutes:
        headers = {"Retry-After": str(int(wait_minutes) * 60)}

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=headers,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """HTTP 异常处理器

    处理 FastAPI/Starlette 抛出的 HTTPException（404 路由不存在等）。
    """
    content = {
        "status": ResponseStatus.ERROR.value,
        "message": str(exc.detail),
        "msg_details": [],
        "data": {},
        "error_code": f"HTTP_{exc.status_code}",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """通用异常处理器（兜底）

    记录完整堆栈，返回 500。
    """
    request_id = getattr(request.state, "request_id", "unknown")
    tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)

    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "traceback": "".join(tb_lines),
        }
    )

    content = {
        "status": ResponseStatus.ERROR.value,
        "message": "服务器内部错误",
        "msg_details": [],
        "data": {},
        "error_code": "INTERNAL_SERVER_ERROR"
    }

    if _is_debug():
        content["debug_info"] = {
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "traceback": tb_lines[-5:]  # 只返回最后5行堆栈
        }

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content
    )


def register_exception_handlers(app) -> None:
    """注册所有异常处理器到 FastAPI 应用

    这个函数会注册以下异常处理器：
    1. BusinessException - 业务异常处理器（含全部 TFA 异常）
    2. HTTPException - HTTP 异常处理器
    3. Exception - 通用异常处理器（兜底）

    使用示例:
        from fastapi import FastAPI
        from ytfa.exceptions import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)

    Args:
        app: FastAPI 应用实例
    """
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    # 通用异常处理器必须放在最后
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered successfully")
