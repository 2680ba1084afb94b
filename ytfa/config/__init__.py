"""配置模块

提供配置管理功能：
- AppSettings: 应用基础配置，支持 YAML + 环境变量
- 子配置类: TfaSettings, FloodSettings, LoggingSettings
- ConfigLoader: YAML 配置加载器
- ConfigManager: 配置管理器

快速开始:
    from ytfa.config import AppSettings, load_yaml_config

    settings = load_yaml_config("config/settings.yaml", AppSettings)

配置优先级: 环境变量 > YAML 文件 > 默认值
"""

from .settings import (
    AppSettings,
    TfaSettings,
    FloodSettings,
    LoggingSettings,
)

from .loader import (
    ConfigLoader,
    ConfigManager,
    load_yaml_config,
)

__all__ = [
    # Settings Classes
    "AppSettings",
    "TfaSettings",
    "FloodSettings",
    "LoggingSettings",

    # Config Loader
    "ConfigLoader",
    "ConfigManager",
    "load_yaml_config",
]
