"""备用插件队列测试"""

import pytest

from ytfa.fallback import FallbackChain
from ytfa.plugins import PluginManager

from tests.helpers import make_validation_plugin


@pytest.fixture
def primary():
    return make_validation_plugin("tfa_totp", fallbacks=("fb_a", "fb_b", "fb_c"))


@pytest.fixture
def plugin_manager(primary):
    plugins = PluginManager()
    plugins.register(primary)
    for plugin_id in ("fb_a", "fb_b", "fb_c"):
        plugins.register(make_validation_plugin(plugin_id, is_fallback=True))
    return plugins


def plugin_ids(queue):
    return [entry.plugin_id for entry in queue]


class TestFallbackChain:
    """FallbackChain.build 测试"""

    def test_order_by_weight_then_configuration(self, primary, account, plugin_manager):
        """测试按 weight 升序，weight 相同时保持配置顺序"""
        config = {
            "tfa_totp": {
                "fb_a": {"enable": True, "weight": 2},
                "fb_b": {"enable": True, "weight": 1},
                "fb_c": {"enable": True, "weight": 1},
            },
        }

        queue = FallbackChain.build(primary, account, config, plugin_manager)

        assert plugin_ids(queue) == ["fb_b", "fb_c", "fb_a"]
        assert [entry.weight for entry in queue] == [1, 1, 2]

    def test_order_is_deterministic(self, primary, account, plugin_manager):
        """测试多次构建结果一致"""
        config = {"tfa_totp": {"fb_c": {"enable": True}, "fb_a": {"enable": True}, "fb_b": {"enable": True}}}

        results = {tuple(plugin_ids(FallbackChain.build(primary, account, config, plugin_manager))) for _ in range(5)}

        assert results == {("fb_c", "fb_a", "fb_b")}

    def test_disabled_fallback_skipped(self, primary, account, plugin_manager):
        """测试未启用的备用插件被跳过"""
        config = {"tfa_totp": {"fb_a": {"enable": False, "weight": 0}, "fb_b": {"weight": 1}}}

        assert FallbackChain.build(primary, account, config, plugin_manager) == []

    def test_undeclared_fallback_skipped(self, account, plugin_manager):
        """测试主插件未声明的备用插件被跳过"""
        primary = make_validation_plugin("tfa_totp", fallbacks=("fb_a",))
        config = {"tfa_totp": {"fb_a": {"enable": True}, "fb_b": {"enable": True}}}

        assert plugin_ids(FallbackChain.build(primary, account, config, plugin_manager)) == ["fb_a"]

    def test_unregistered_fallback_skipped(self, account):
        """测试未注册的备用插件被跳过"""
        primary = make_validation_plugin("tfa_totp", fallbacks=("fb_a", "fb_missing"))
        plugins = PluginManager().register(primary).register(make_validation_plugin("fb_a", is_fallback=True))
        config = {"tfa_totp": {"fb_missing": {"enable": True}, "fb_a": {"enable": True}}}

        assert plugin_ids(FallbackChain.build(primary, account, config, plugins)) == ["fb_a"]

    def test_non_fallback_plugin_skipped(self, account):
        """测试未标记为备用插件的插件被跳过"""
        primary = make_validation_plugin("tfa_totp", fallbacks=("tfa_email",))
        plugins = PluginManager().register(primary).register(make_validation_plugin("tfa_email"))
        config = {"tfa_totp": {"tfa_email": {"enable": True}}}

        assert FallbackChain.build(primary, account, config, plugins) == []

    def test_fallback_not_ready_skipped(self, primary, account, plugin_manager):
        """测试账户未设置的备用插件不提供"""
        plugin_manager.register(make_validation_plugin("fb_b", ready=False, is_fallback=True))
        config = {"tfa_totp": {"fb_a": {"enable": True}, "fb_b": {"enable": True}}}

        assert plugin_ids(FallbackChain.build(primary, account, config, plugin_manager)) == ["fb_a"]

    def test_primary_never_its_own_fallback(self, account):
        """测试主插件不会出现在自己的备用队列中"""
        primary = make_validation_plugin("tfa_totp", is_fallback=True, fallbacks=("tfa_totp",))
        plugins = PluginManager().register(primary)
        config = {"tfa_totp": {"tfa_totp": {"enable": True}}}

        assert FallbackChain.build(primary, account, config, plugins) == []

    def test_empty_configuration(self, primary, account, plugin_manager):
        """测试没有配置时队列为空"""
        assert FallbackChain.build(primary, account, {}, plugin_manager) == []
        assert FallbackChain.build(primary, account, {"tfa_sms": {"fb_a": {"enable": True}}}, plugin_manager) == []
