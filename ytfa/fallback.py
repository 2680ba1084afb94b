"""备用验证插件队列

根据主验证插件的声明和站点配置，构建账户可用的备用插件队列。

配置格式（TfaSettings.fallback_plugins）::

    fallback_plugins:
      tfa_totp:
        tfa_recovery_code:
          enable: true
          weight: 0
        tfa_sms:
          enable: true
          weight: 5

可用条件：主插件声明 ∧ 已启用 ∧ 已注册 ∧ 是备用插件 ∧ 账户已就绪。
按 weight 升序排列，weight 相同时保持配置顺序。
"""

from typing import Any, List, Mapping, TYPE_CHECKING

from .context import FallbackEntry
from .log import get_logger

if TYPE_CHECKING:
    from .account import TfaAccount
    from .plugins import PluginManager, TfaValidationPlugin

logger = get_logger()


class FallbackChain:
    """备用插件队列构建器"""

    @staticmethod
    def build(
        primary: "TfaValidationPlugin",
        account: "TfaAccount",
        fallback_config: Mapping[str, Mapping[str, Mapping[str, Any]]],
        plugin_manager: "PluginManager",
    ) -> List[FallbackEntry]:
        """构建备用插件队列

        Args:
            primary: 主验证插件
            account: 账户
            fallback_config: 备用插件配置
            plugin_manager: 插件管理器

        Returns:
            按遍历顺序排列的队列，可以为空
        """
        declared = set(primary.descriptor.fallbacks)
        configured: Mapping[str, Mapping[str, Any]] = (fallback_config or {}).get(primary.plugin_id) or {}

        entries: List[FallbackEntry] = []
        for plugin_id, options in configured.items():
            options = options or {}
            if plugin_id == primary.plugin_id or plugin_id not in declared:
                continue
            if not options.get("enable", False):
                continue
            plugin = plugin_manager.find_validation_plugin(plugin_id)
            if plugin is None or not plugin.descriptor.is_fallback:
                logger.debug(f"备用插件不可用，已跳过: {plugin_id}")
                continue
            if not plugin.ready(account):
                continue
            entries.append(FallbackEntry(plugin_id=plugin_id, weight=int(options.get("weight", 0))))

        # sorted 是稳定排序，相同 weight 保持配置顺序
        return sorted(entries, key=lambda entry: entry.weight)

