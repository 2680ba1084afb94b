"""TFA 插件基础定义

两类插件：
    - TfaValidationPlugin: 验证插件，负责发起挑战、校验响应（TOTP、短信、恢复码等）
    - TfaLoginPlugin:      登录放行插件，可判定本次登录无需 TFA（如受信任设备）

可选钩子由描述符中的能力标志声明，编排器只调用声明过的钩子：
    - supports_begin:    验证插件在流程开始时执行 begin()（如发送短信验证码）
    - supports_finalize: 流程完成时执行 finalize()
    - supports_submit:   登录插件在提交验证时执行 on_submit()（如记住设备）

使用示例:
    from ytfa.plugins import TfaValidationPlugin, PluginDescriptor, ChallengeDescriptor

    class SmsPlugin(TfaValidationPlugin):
        descriptor = PluginDescriptor(
            id="tfa_sms",
            label="SMS",
            fallbacks=("tfa_recovery_code",),
            supports_begin=True,
        )

        def ready(self, account):
            return account.uid in phone_numbers

        def begin(self, account, context):
            send_sms(account.uid)

        def build_challenge(self, account, context):
            return ChallengeDescriptor(plugin_id=self.plugin_id, label="SMS code")

        def validate_response(self, account, context, response):
            return check_code(account.uid, response.get("code"))
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Tuple, TYPE_CHECKING

from ..flood.control import FloodLimit

if TYPE_CHECKING:
    from ..account import TfaAccount
    from ..context import ProcessContext


@dataclass(frozen=True)
class PluginDescriptor:
    """插件描述符

    Attributes:
        id: 插件 ID
        label: 显示名称
        is_fallback: 是否可作为备用验证插件
        fallbacks: 声明可接受的备用插件 ID（仅对主验证插件有意义）
        has_setup: 是否有配套的设置流程（没有则不能作为主验证插件）
        supports_begin: 是否实现 begin 钩子
        supports_finalize: 是否实现 finalize 钩子
        supports_submit: 是否实现 on_submit 钩子（登录插件）
    """
    id: str
    label: str
    is_fallback: bool = False
    fallbacks: Tuple[str, ...] = ()
    has_setup: bool = True
    supports_begin: bool = False
    supports_finalize: bool = False
    supports_submit: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "is_fallback": self.is_fallback,
            "fallbacks": list(self.fallbacks),
            "has_setup": self.has_setup,
        }


@dataclass
class ChallengeDescriptor:
    """挑战描述

    对 TFA 核心不透明，由插件生成、由宿主渲染。

    Attributes:
        plugin_id: 生成挑战的插件 ID
        label: 显示名称
        fields: 需要用户填写的字段，如 [{"name": "code", "type": "text"}]
        message: 提示信息
        extra: 插件自定义数据
    """
    plugin_id: str
    label: str
    fields: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


class TfaPlugin(ABC):
    """插件基类"""

    descriptor: ClassVar[PluginDescriptor]

    @property
    def plugin_id(self) -> str:
        return self.descriptor.id

    @property
    def label(self) -> str:
        return self.descriptor.label


class TfaValidationPlugin(TfaPlugin):
    """验证插件抽象基类

    插件实例在注册表中共享，不应在实例上保存单次登录的状态；
    需要跨请求保存的数据放在 ProcessContext.data 中。
    """

    # 插件自定义频率限制
    flood_limits: ClassVar[Tuple[FloodLimit, ...]] = ()

    @abstractmethod
    def ready(self, account: "TfaAccount") -> bool:
        """账户是否已完成此验证方式的设置"""
        pass

    def begin(self, account: "TfaAccount", context: "ProcessContext") -> None:
        """流程开始钩子（descriptor.supports_begin 为 True 时调用）"""
        pass

    @abstractmethod
    def build_challenge(self, account: "TfaAccount", context: "ProcessContext") -> ChallengeDescriptor:
        """生成挑战描述"""
        pass

    @abstractmethod
    def validate_response(
        self,
        account: "TfaAccount",
        context: "ProcessContext",
        response: Dict[str, Any],
    ) -> bool:
        """校验用户提交的响应"""
        pass

    def finalize(self, account: "TfaAccount", context: "ProcessContext") -> None:
        """流程完成钩子（descriptor.supports_finalize 为 True 时调用）"""
        pass


class TfaLoginPlugin(TfaPlugin):
    """登录放行插件抽象基类

    任一插件返回 True 即跳过 TFA。
    """

    @abstractmethod
    def login_allowed(self, account: "TfaAccount") -> bool:
        """本次登录是否可以跳过 TFA"""
        pass

    def on_submit(
        self,
        account: "TfaAccount",
        context: "ProcessContext",
        response: Dict[str, Any],
    ) -> None:
        """提交验证时的钩子（descriptor.supports_submit 为 True 时调用），返回值不影响验证结果"""
        pass

    def finalize(self, account: "TfaAccount", context: "ProcessContext") -> None:
        """流程完成钩子（descriptor.supports_finalize 为 True 时调用）"""
        pass
