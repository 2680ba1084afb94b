"""TFA 频率限制策略

在发起挑战、校验响应之前，按固定优先级检查三个作用域：

1. **用户作用域** (tfa_user)：验证码输入失败次数。
2. **流程作用域** (tfa_begin)：发起 TFA 流程（含切换备用插件）的次数。
3. **插件作用域** (tfa_plugin:<插件>:<限制名>)：验证插件自定义的限制。

第一个拒绝的作用域直接返回，调用方据此给出等待提示（向上取整的分钟数）。

标识符策略（FloodSettings.uid_only）:
    - True:  只用 uid，跨 IP 累计，防撞库更强
    - False: uid + 客户端 IP，单个恶意 IP 无法锁死任意用户名

使用示例:
    from ytfa.flood import FloodControl, MemoryFloodBackend
    from ytfa.config import FloodSettings

    control = FloodControl(MemoryFloodBackend(), FloodSettings())

    result = control.check(uid=1, client_ip="10.0.0.1", plugin=plugin)
    if not result.allowed:
        raise result.to_error()
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, TYPE_CHECKING

from ..exceptions import RateLimited
from ..log import get_logger
from .backends import FloodBackend

if TYPE_CHECKING:
    from ..config import FloodSettings
    from ..plugins import TfaValidationPlugin

logger = get_logger()

USER_EVENT = "tfa_user"
BEGIN_EVENT = "tfa_begin"


@dataclass(frozen=True)
class FloodLimit:
    """插件自定义频率限制

    Attributes:
        name: 限制名
        threshold: 阈值
        window: 时间窗口（秒），为 None 时使用 FloodSettings.window
        message: 触发时的提示信息
    """
    name: str
    threshold: int
    window: Optional[int] = None
    message: str = ""


class FloodScope(str, Enum):
    """频率限制作用域"""
    USER = "user"
    BEGIN = "begin"
    PLUGIN = "plugin"


@dataclass
class FloodCheckResult:
    """频率限制检查结果

    Attributes:
        allowed: 是否允许
        scope: 触发限制的作用域
        event: 触发限制的事件名
        window: 触发限制的时间窗口（秒）
        messages: 提示信息
    """
    allowed: bool
    scope: Optional[FloodScope] = None
    event: Optional[str] = None
    window: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def wait_minutes(self) -> int:
        """建议等待的分钟数"""
        return math.ceil(self.window / 60) if self.window else 0

    @classmethod
    def ok(cls) -> "FloodCheckResult":
        return cls(allowed=True)

    def to_error(self) -> RateLimited:
        """转换为 RateLimited 异常"""
        message = self.messages[0] if self.messages else (
            f"Too many attempts. Please try again in {self.wait_minutes} minutes."
        )
        return RateLimited(
            message,
            scope=self.event or "",
            wait_minutes=self.wait_minutes,
            details=self.messages[1:],
        )


class FloodControl:
    """TFA 频率限制策略

    Args:
        backend: 事件存储
        settings: 频率限制配置
    """

    def __init__(self, backend: FloodBackend, settings: "FloodSettings"):
        self.backend = backend
        self.settings = settings

    def identifier(self, uid: Any, client_ip: Optional[str] = None) -> str:
        """计算标识符"""
        if self.settings.uid_only or not client_ip:
            return str(uid)
        return f"{uid}-{client_ip}"

    @staticmethod
    def plugin_event(plugin_id: str, limit: FloodLimit) -> str:
        """插件限制的事件名"""
        return f"tfa_plugin:{plugin_id}:{limit.name}"

    def check(
        self,
        uid: Any,
        client_ip: Optional[str] = None,
        plugin: "TfaValidationPlugin" = None,
        scopes: Sequence[FloodScope] = (FloodScope.USER, FloodScope.BEGIN, FloodScope.PLUGIN),
    ) -> FloodCheckResult:
        """按优先级检查各作用域

        Args:
            uid: 账户 ID
            client_ip: 客户端 IP
            plugin: 当前验证插件（检查插件作用域时需要）
            scopes: 需要检查的作用域

        Returns:
            FloodCheckResult
        """
        if self.settings.test_mode:
            return FloodCheckResult.ok()

        identifier = self.identifier(uid, client_ip)

        if FloodScope.USER in scopes:
            window = self.settings.user_window
            if not self.backend.is_allowed(USER_EVENT, self.settings.user_threshold, window, identifier):
                return self._denied(FloodScope.USER, USER_EVENT, window, (
                    "You have reached the threshold for incorrect code entry attempts. "
                    f"Please try again in {math.ceil(window / 60)} minutes."
                ))

        if FloodScope.BEGIN in scopes:
            window = self.settings.window
            if not self.backend.is_allowed(BEGIN_EVENT, self.settings.begin_threshold, window, identifier):
                return self._denied(FloodScope.BEGIN, BEGIN_EVENT, window, (
                    "You have reached the threshold for TFA attempts. "
                    f"Please try again in {math.ceil(window / 60)} minutes."
                ))

        if FloodScope.PLUGIN in scopes and plugin is not None:
            for limit in plugin.flood_limits:
                window = limit.window or self.settings.window
                event = self.plugin_event(plugin.plugin_id, limit)
                if not self.backend.is_allowed(event, limit.threshold, window, identifier):
                    return self._denied(FloodScope.PLUGIN, event, window, limit.message or (
                        f"You have reached the threshold for {plugin.label} attempts. "
                        f"Please try again in {math.ceil(window / 60)} minutes."
                    ))

        return FloodCheckResult.ok()

    def _denied(self, scope: FloodScope, event: str, window: int, message: str) -> FloodCheckResult:
        logger.info(f"TFA 频率限制触发: scope={scope.value}, event={event}")
        return FloodCheckResult(allowed=False, scope=scope, event=event, window=window, messages=[message])

    def register_begin(self, uid: Any, client_ip: Optional[str] = None) -> bool:
        """登记一次流程发起

        检查与登记是原子的，达到阈值时返回 False 且不登记。
        """
        identifier = self.identifier(uid, client_ip)
        if self.settings.test_mode:
            self.backend.register(BEGIN_EVENT, self.settings.window, identifier)
            return True
        return self.backend.attempt(BEGIN_EVENT, self.settings.begin_threshold, self.settings.window, identifier)

    def begin_denied(self) -> FloodCheckResult:
        """流程作用域登记失败时的检查结果"""
        window = self.settings.window
        return self._denied(FloodScope.BEGIN, BEGIN_EVENT, window, (
            "You have reached the threshold for TFA attempts. "
            f"Please try again in {math.ceil(window / 60)} minutes."
        ))

    def register_failure(
        self,
        uid: Any,
        client_ip: Optional[str] = None,
        plugin: "TfaValidationPlugin" = None,
    ) -> None:
        """登记一次验证失败（用户作用域 + 插件作用域）"""
        identifier = self.identifier(uid, client_ip)
        self.backend.register(USER_EVENT, self.settings.user_window, identifier)
        if plugin is not None:
            for limit in plugin.flood_limits:
                window = limit.window or self.settings.window
                self.backend.register(self.plugin_event(plugin.plugin_id, limit), window, identifier)

    def clear_user(self, uid: Any, client_ip: Optional[str] = None) -> None:
        """登录成功后清除用户作用域和流程作用域"""
        identifier = self.identifier(uid, client_ip)
        self.backend.clear(USER_EVENT, identifier)
        self.backend.clear(BEGIN_EVENT, identifier)
