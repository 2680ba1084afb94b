"""TFA 插件管理器

维护已注册的验证插件和登录放行插件，按 ID 解析插件实例。
插件的发现和注册由宿主负责，这里只做查找和约束检查。

使用示例:
    from ytfa.plugins import PluginManager

    plugins = PluginManager()
    plugins.register(TotpPlugin())
    plugins.register(RecoveryCodePlugin())
    plugins.register(TrustedDevicePlugin())

    # 启动时检查插件约束
    plugins.check_definitions()

    # 解析主验证插件（不存在或不可作为主插件时抛出 ConfigurationError）
    plugin = plugins.get_primary("tfa_totp")
"""

from typing import Dict, Iterable, List, Optional

from ..exceptions import ConfigurationError
from ..log import ops_logger
from .base import PluginDescriptor, TfaPlugin, TfaValidationPlugin, TfaLoginPlugin


class PluginManager:
    """TFA 插件管理器"""

    def __init__(self):
        self._validation: Dict[str, TfaValidationPlugin] = {}
        self._login: Dict[str, TfaLoginPlugin] = {}

    def register(self, plugin: TfaPlugin) -> "PluginManager":
        """注册插件

        Args:
            plugin: 验证插件或登录放行插件实例

        Returns:
            self: 支持链式调用
        """
        plugin_id = plugin.plugin_id
        if isinstance(plugin, TfaValidationPlugin):
            self._validation[plugin_id] = plugin
        elif isinstance(plugin, TfaLoginPlugin):
            self._login[plugin_id] = plugin
        else:
            raise TypeError(f"Unsupported TFA plugin type: {type(plugin).__name__}")
        return self

    def unregister(self, plugin_id: str) -> "PluginManager":
        """注销插件"""
        self._validation.pop(plugin_id, None)
        self._login.pop(plugin_id, None)
        return self

    def get_definitions(self) -> Dict[str, PluginDescriptor]:
        """获取所有验证插件的描述符"""
        return {pid: plugin.descriptor for pid, plugin in self._validation.items()}

    def get_login_definitions(self) -> Dict[str, PluginDescriptor]:
        """获取所有登录放行插件的描述符"""
        return {pid: plugin.descriptor for pid, plugin in self._login.items()}

    def get_validation_plugin(self, plugin_id: Optional[str]) -> TfaValidationPlugin:
        """按 ID 获取验证插件

        Raises:
            ConfigurationError: 未配置插件或插件未注册
        """
        if not plugin_id:
            raise ConfigurationError(details=["No validation plugin is configured"])
        plugin = self._validation.get(plugin_id)
        if plugin is None:
            raise ConfigurationError(
                details=[f"Validation plugin '{plugin_id}' is not registered"],
                plugin_id=plugin_id,
            )
        return plugin

    def get_primary(self, plugin_id: Optional[str]) -> TfaValidationPlugin:
        """获取可作为主验证方式的插件

        Raises:
            ConfigurationError: 插件不存在，或没有配套的设置流程
        """
        plugin = self.get_validation_plugin(plugin_id)
        if not plugin.descriptor.has_setup:
            raise ConfigurationError(
                details=[f"Validation plugin '{plugin_id}' has no setup and cannot be used as primary"],
                plugin_id=plugin_id,
            )
        return plugin

    def find_validation_plugin(self, plugin_id: str) -> Optional[TfaValidationPlugin]:
        """按 ID 查找验证插件，不存在返回 None"""
        return self._validation.get(plugin_id)

    def get_login_plugins(self, plugin_ids: Iterable[str]) -> List[TfaLoginPlugin]:
        """按声明顺序获取登录放行插件

        未注册的 ID 记录到运维日志后跳过。
        """
        plugins = []
        for plugin_id in plugin_ids:
            plugin = self._login.get(plugin_id)
            if plugin is None:
                ops_logger.error(f"TFA 登录插件未注册，已忽略: {plugin_id}")
                continue
            plugins.append(plugin)
        return plugins

    def check_definitions(self) -> None:
        """检查插件约束

        主验证插件声明的备用插件必须标记为 is_fallback。

        Raises:
            ConfigurationError: 存在违反约束的声明
        """
        problems = []
        for plugin_id, descriptor in self.get_definitions().items():
            if descriptor.is_fallback:
                continue
            for fallback_id in descriptor.fallbacks:
                fallback = self._validation.get(fallback_id)
                if fallback is not None and not fallback.descriptor.is_fallback:
                    problems.append(
                        f"Plugin '{plugin_id}' declares '{fallback_id}' as fallback, "
                        f"but it is not a fallback plugin"
                    )
        if problems:
            for problem in problems:
                ops_logger.error(f"TFA 插件配置错误: {problem}")
            raise ConfigurationError(details=problems)
