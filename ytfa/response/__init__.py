"""响应模块

提供统一格式的 JSON 响应：
    {"status": ..., "message": ..., "msg_details": [...], "data": {...}}
"""

from .base_response import ResponseStatus, BaseResponse, Resp

__all__ = [
    "ResponseStatus",
    "BaseResponse",
    "Resp",
]
