"""业务异常类定义

定义 TFA 流程使用的异常类体系。

异常分类:
    - ConfigurationError:   插件配置错误（运维问题，非用户行为），拒绝登录，不计入频率限制
    - RateLimited:          频率限制触发，用户稍后可重试
    - ChallengeMismatch:    流程上下文与账户不匹配或已完成，疑似重放/绕过，直接拒绝
    - ValidationFailed:     验证码不正确，用户可重新输入
    - NoFallbackAvailable:  请求备用验证方式但没有可用的备用插件
    - SetupRequired:        账户要求 TFA 但尚未完成设置，且跳过次数已用完

ConfigurationError 和 ChallengeMismatch 不会被自动重试。
"""

import copy
from enum import Enum
from typing import Optional, List, Any, Dict, Union

from fastapi import status


class ErrorCode(str, Enum):
    """错误代码枚举

    继承自 str，可以直接作为字符串使用。

    使用示例:
        from ytfa.exceptions import ErrorCode

        if error.code == ErrorCode.TFA_CHALLENGE_MISMATCH:
            ...
    """

    # ==================== 通用错误 ====================
    BUSINESS_ERROR = "BUSINESS_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # ==================== TFA 相关 ====================
    TFA_MISCONFIGURED = "TFA_MISCONFIGURED"
    TFA_CHALLENGE_MISMATCH = "TFA_CHALLENGE_MISMATCH"
    TFA_VALIDATION_FAILED = "TFA_VALIDATION_FAILED"
    TFA_NO_FALLBACK = "TFA_NO_FALLBACK"
    TFA_SETUP_REQUIRED = "TFA_SETUP_REQUIRED"


# 类型别名，支持枚举和字符串
ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """业务异常基类

    属性:
        message: 错误消息（面向用户）
        code: 错误代码（用于程序判断，支持 ErrorCode 枚举或字符串）
        status_code: HTTP 状态码
        details: 详细错误信息列表
        extra: 额外的上下文信息

    使用示例:
        raise BusinessException("操作失败", code=ErrorCode.BUSINESS_ERROR)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCodeType = ErrorCode.BUSINESS_ERROR,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or []
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含异常信息的字典
        """
        return {
            "message": self.message,
            "code": self.code,
            "status_code": self.status_code,
            # 返回深拷贝，避免调用方修改返回值反向污染异常对象内部状态
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra)
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )


class TfaException(BusinessException):
    """TFA 异常基类

    Attributes:
        retryable: 用户是否可以重试（由用户重试，核心从不自动重试）
    """

    retryable: bool = False


class ConfigurationError(TfaException):
    """TFA 插件配置错误

    未配置验证插件、插件 ID 不在注册表中、插件不可作为主验证方式等。
    属于运维错误，不计入频率限制。
    """

    def __init__(
        self,
        message: str = "Two-factor authentication is enabled but misconfigured. Please contact a site administrator.",
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TFA_MISCONFIGURED,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            **extra
        )


class RateLimited(TfaException):
    """频率限制触发

    Attributes:
        scope: 触发限制的作用域（tfa_user / tfa_begin / 插件限制名）
        wait_minutes: 建议等待分钟数
    """

    retryable = True

    def __init__(
        self,
        message: str = "Too many attempts. Please try again later.",
        scope: str = "",
        wait_minutes: int = 0,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.scope = scope
        self.wait_minutes = wait_minutes
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMIT_EXCEEDED,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
            scope=scope,
            wait_minutes=wait_minutes,
            **extra
        )


class ChallengeMismatch(TfaException):
    """TFA 流程上下文不匹配

    上下文不属于当前账户、已完成、已被新流程替换，或登录哈希不匹配。
    视为潜在的重放/绕过攻击。
    """

    def __init__(
        self,
        message: str = "Access denied.",
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TFA_CHALLENGE_MISMATCH,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            **extra
        )


class ValidationFailed(TfaException):
    """验证码校验失败"""

    retryable = True

    def __init__(
        self,
        message: str = "Invalid code.",
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TFA_VALIDATION_FAILED,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            **extra
        )


class NoFallbackAvailable(TfaException):
    """没有可用的备用验证方式"""

    def __init__(
        self,
        message: str = "No other verification method is available. Please contact a site administrator to recover your account.",
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TFA_NO_FALLBACK,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            **extra
        )


class SetupRequired(TfaException):
    """账户要求 TFA 但尚未完成设置"""

    def __init__(
        self,
        message: str = "Login disallowed. You are required to setup two-factor authentication. Please contact a site administrator.",
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TFA_SETUP_REQUIRED,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            **extra
        )


class Err:
    """异常快捷创建类

    使用示例:
        from ytfa.exceptions import Err

        raise Err.rate_limited(scope="tfa_user", wait_minutes=15)
    """

    @staticmethod
    def misconfigured(message: str = None, **kwargs) -> ConfigurationError:
        """插件配置错误 (503)"""
        if message is None:
            return ConfigurationError(**kwargs)
        return ConfigurationError(message, **kwargs)

    @staticmethod
    def rate_limited(scope: str = "", wait_minutes: int = 0, message: str = None, **kwargs) -> RateLimited:
        """频率限制 (429)"""
        if message is None:
            message = f"Too many attempts. Please try again in {wait_minutes} minutes."
        return RateLimited(message, scope=scope, wait_minutes=wait_minutes, **kwargs)

    @staticmethod
    def mismatch(message: str = "Access denied.", **kwargs) -> ChallengeMismatch:
        """上下文不匹配 (403)"""
        return ChallengeMismatch(message, **kwargs)

    @staticmethod
    def invalid_code(message: str = "Invalid code.", **kwargs) -> ValidationFailed:
        """验证码错误 (401)"""
        return ValidationFailed(message, **kwargs)

    @staticmethod
    def no_fallback(**kwargs) -> NoFallbackAvailable:
        """没有备用验证方式 (403)"""
        return NoFallbackAvailable(**kwargs)

    @staticmethod
    def setup_required(**kwargs) -> SetupRequired:
        """需要先完成 TFA 设置 (403)"""
        return SetupRequired(**kwargs)
