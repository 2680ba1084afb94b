"""TFA 插件模块

- TfaValidationPlugin: 验证插件
- TfaLoginPlugin: 登录放行插件
- PluginManager: 插件注册与解析
"""

from .base import (
    PluginDescriptor,
    ChallengeDescriptor,
    TfaPlugin,
    TfaValidationPlugin,
    TfaLoginPlugin,
)
from .manager import PluginManager

__all__ = [
    "PluginDescriptor",
    "ChallengeDescriptor",
    "TfaPlugin",
    "TfaValidationPlugin",
    "TfaLoginPlugin",
    "PluginManager",
]
