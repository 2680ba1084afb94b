"""测试辅助工具模块

提供 TFA 测试使用的假插件、假时钟和记录型会话接口。
"""

from .tfa_fakes import (
    FakeClock,
    FakeValidationPlugin,
    FakeLoginPlugin,
    RecordingFinalizer,
    FakeRedis,
    make_validation_plugin,
    make_login_plugin,
)

__all__ = [
    'FakeClock',
    'FakeValidationPlugin',
    'FakeLoginPlugin',
    'RecordingFinalizer',
    'FakeRedis',
    'make_validation_plugin',
    'make_login_plugin',
]
