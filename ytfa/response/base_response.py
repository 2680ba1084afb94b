from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from fastapi import status
from fastapi.responses import JSONResponse


class ResponseStatus(str, Enum):
    """响应状态枚举

    用于标识响应的业务状态，与 HTTP 状态码独立。
    """
    SUCCESS = "success"   # 请求成功
    ERROR = "error"       # 请求失败（客户端或服务端错误）
    WARNING = "warning"   # 操作成功但有警告
    INFO = "info"         # 信息性响应


class BaseResponse:
    """基础响应类"""

    @staticmethod
    def _serialize_data(data: Any, _is_top_level: bool = True) -> Any:
        """递归序列化数据，处理 dataclass、枚举、datetime 和列表

        Args:
            data: 要序列化的数据
            _is_top_level: 是否为顶层调用，顶层 None 转为 {}，嵌套 None 保持为 None
        """
        if data is None:
            return {} if _is_top_level else None

        if isinstance(data, datetime):
            return data.strftime('%Y-%m-%d %H:%M:%S')

        if isinstance(data, Enum):
            return data.value

        # 有 to_dict 的对象优先使用 to_dict
        if hasattr(data, 'to_dict') and callable(getattr(data, 'to_dict')):
            return BaseResponse._serialize_data(data.to_dict(), False)

        if is_dataclass(data) and not isinstance(data, type):
            return BaseResponse._serialize_data(asdict(data), False)

        if isinstance(data, (list, tuple)):
            return [BaseResponse._serialize_data(item, False) for item in data]

        if isinstance(data, dict):
            return {k: BaseResponse._serialize_data(v, False) for k, v in data.items()}

        return data

    @staticmethod
    def _create_response(
        message: str,
        data: Any = None,
        msg_details: Optional[List[str]] = None,
        status_code: int = status.HTTP_200_OK,
        response_status: ResponseStatus = ResponseStatus.SUCCESS
    ) -> JSONResponse:
        """创建标准化响应"""
        content = {
            "status": response_status.value,
            "message": message,
            "msg_details": msg_details if msg_details is not None else [],
            "data": BaseResponse._serialize_data(data)
        }

        return JSONResponse(
            status_code=status_code,
            content=content
        )


class Resp:
    """响应快捷类

    使用示例:
        from ytfa.response import Resp

        return Resp.OK(data=result)
        return Resp.Info(message="请输入验证码", data=challenge)
    """

    @staticmethod
    def OK(data: Any = None, message: str = "请求成功") -> JSONResponse:
        """200 OK - 请求成功"""
        return BaseResponse._create_response(
            data=data,
            message=message,
            status_code=status.HTTP_200_OK,
            response_status=ResponseStatus.SUCCESS
        )

    @staticmethod
    def Info(message: str = "信息提示", data: Any = None, msg_details: Optional[List[str]] = None) -> JSONResponse:
        """信息响应 - 流程尚未结束，需要客户端继续操作"""
        return BaseResponse._create_response(
            message=message,
            data=data,
            msg_details=msg_details,
            status_code=status.HTTP_200_OK,
            response_status=ResponseStatus.INFO
        )
