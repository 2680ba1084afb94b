"""插件管理器测试"""

import logging

import pytest

from ytfa.exceptions import ConfigurationError, ErrorCode
from ytfa.plugins import PluginDescriptor, PluginManager

from tests.helpers import make_login_plugin, make_validation_plugin


class TestPluginDescriptor:
    """PluginDescriptor 测试"""

    def test_to_dict(self):
        """测试转换为字典"""
        descriptor = PluginDescriptor(id="tfa_totp", label="TOTP", fallbacks=("tfa_recovery_code",))

        assert descriptor.to_dict() == {
            "id": "tfa_totp",
            "label": "TOTP",
            "is_fallback": False,
            "fallbacks": ["tfa_recovery_code"],
            "has_setup": True,
        }


class TestPluginRegistry:
    """注册与查找测试"""

    def test_register_by_kind(self, totp_plugin, trusted_device):
        """测试按插件类型分别注册"""
        plugins = PluginManager().register(totp_plugin).register(trusted_device)

        assert list(plugins.get_definitions()) == ["tfa_totp"]
        assert list(plugins.get_login_definitions()) == ["tfa_trusted_device"]

    def test_register_unsupported_type(self):
        """测试注册不支持的对象"""
        with pytest.raises(TypeError):
            PluginManager().register(object())

    def test_unregister(self, totp_plugin):
        """测试注销插件"""
        plugins = PluginManager().register(totp_plugin)
        plugins.unregister("tfa_totp")
        plugins.unregister("tfa_totp")

        assert plugins.find_validation_plugin("tfa_totp") is None

    def test_get_validation_plugin_not_configured(self):
        """测试未配置验证插件"""
        with pytest.raises(ConfigurationError) as exc_info:
            PluginManager().get_validation_plugin(None)

        assert exc_info.value.code == ErrorCode.TFA_MISCONFIGURED
        assert exc_info.value.status_code == 503

    def test_get_validation_plugin_unregistered(self):
        """测试验证插件未注册"""
        with pytest.raises(ConfigurationError) as exc_info:
            PluginManager().get_validation_plugin("tfa_missing")

        assert exc_info.value.extra["plugin_id"] == "tfa_missing"

    def test_get_primary_requires_setup(self):
        """测试没有设置流程的插件不能作为主验证插件"""
        plugins = PluginManager().register(make_validation_plugin("tfa_recovery_code", has_setup=False))

        assert plugins.get_validation_plugin("tfa_recovery_code").plugin_id == "tfa_recovery_code"
        with pytest.raises(ConfigurationError):
            plugins.get_primary("tfa_recovery_code")

    def test_get_login_plugins_keeps_order_and_skips_unknown(self, caplog):
        """测试登录放行插件按声明顺序返回，未注册的跳过并记录运维日志"""
        plugins = PluginManager()
        plugins.register(make_login_plugin("tfa_b"))
        plugins.register(make_login_plugin("tfa_a"))

        with caplog.at_level(logging.ERROR, logger="ytfa.ops"):
            result = plugins.get_login_plugins(["tfa_a", "tfa_missing", "tfa_b"])

        assert [p.plugin_id for p in result] == ["tfa_a", "tfa_b"]
        assert "tfa_missing" in caplog.text


class TestCheckDefinitions:
    """插件约束检查测试"""

    def test_valid_definitions(self, totp_plugin, recovery_plugin, sms_plugin):
        """测试声明的备用插件都是备用插件"""
        PluginManager().register(totp_plugin).register(recovery_plugin).register(sms_plugin).check_definitions()

    def test_non_fallback_declared_as_fallback(self, caplog):
        """测试主插件声明了非备用插件作为备用"""
        plugins = PluginManager()
        plugins.register(make_validation_plugin("tfa_totp", fallbacks=("tfa_email",)))
        plugins.register(make_validation_plugin("tfa_email"))

        with caplog.at_level(logging.ERROR, logger="ytfa.ops"):
            with pytest.raises(ConfigurationError) as exc_info:
                plugins.check_definitions()

        assert "tfa_email" in exc_info.value.details[0]
        assert "tfa_email" in caplog.text

    def test_unregistered_declared_fallback_ignored(self):
        """测试声明了未注册的备用插件不算违反约束"""
        plugins = PluginManager().register(make_validation_plugin("tfa_totp", fallbacks=("tfa_missing",)))

        plugins.check_definitions()
