"""
配置模块
提供 TFA 流程的默认配置，业务项目可以继承并覆盖
"""

from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class FloodSettings(BaseSettings):
    """防洪（频率限制）配置

    三个作用域按固定优先级检查：
        1. tfa_user:  单用户验证码输入失败次数（user_threshold / user_window）
        2. tfa_begin: 单用户发起 TFA 流程的次数（begin_threshold / window）
        3. 插件自定义限制（由验证插件声明）

    使用示例:
        from ytfa.config import FloodSettings

        flood = FloodSettings(
            user_threshold=5,
            user_window=600,
            uid_only=True,   # 只按用户 ID 计数，不区分 IP
        )

    配置说明:
        - uid_only=True: 标识符仅为 uid，跨 IP 累计，防撞库更强
        - uid_only=False: 标识符为 uid + IP，单个恶意 IP 无法锁死任意用户名
    """
    user_threshold: int = Field(default=6, description="单用户验证失败次数阈值")
    user_window: int = Field(default=900, description="单用户验证失败计数窗口（秒）")
    begin_threshold: int = Field(default=6, description="发起 TFA 流程次数阈值")
    window: int = Field(default=3600, description="发起 TFA 流程计数窗口（秒），插件限制默认也使用此窗口")
    uid_only: bool = Field(default=False, description="标识符是否只使用用户 ID（不附加客户端 IP）")
    test_mode: bool = Field(default=False, description="测试模式，跳过所有频率限制检查")

    class Config:
        env_prefix = "YTFA_FLOOD_"


class TfaSettings(BaseSettings):
    """TFA 流程配置

    由管理后台维护，TFA 核心只读。

    使用示例:
        from ytfa.config import TfaSettings

        tfa_config = TfaSettings(
            enabled=True,
            secret_key="your-secret-key",
            validation_plugin="tfa_totp",
            login_plugins=["tfa_trusted_device"],
            fallback_plugins={
                "tfa_totp": {
                    "tfa_recovery_code": {"enable": True, "weight": 1},
                    "tfa_sms": {"enable": True, "weight": 2},
                },
            },
            validation_skip=3,
        )

    fallback_plugins 格式:
        {主验证插件: {备用插件: {"enable": bool, "weight": int}}}
        字典插入顺序即配置顺序，权重相同时按此顺序排列。
    """
    enabled: bool = Field(default=False, description="是否启用 TFA")
    secret_key: str = Field(default="change-me-in-production", description="登录哈希签名密钥")
    validation_plugin: Optional[str] = Field(default=None, description="默认验证插件 ID")
    login_plugins: List[str] = Field(default_factory=list, description="启用的登录放行插件（按声明顺序调用）")
    fallback_plugins: Dict[str, Dict[str, Dict[str, Any]]] = Field(
        default_factory=dict,
        description="备用插件配置 {主插件: {备用插件: {enable, weight}}}",
    )
    validation_skip: int = Field(default=3, description="未完成 TFA 设置时允许跳过验证的次数")
    context_ttl_seconds: int = Field(default=900, description="未完成的 TFA 流程上下文有效期（秒）")
    default_redirect: str = Field(default="/", description="TFA 完成后的默认跳转地址")
    flood: FloodSettings = Field(default_factory=FloodSettings, description="频率限制配置")

    class Config:
        env_prefix = "YTFA_"


class LoggingSettings(BaseSettings):
    """日志配置

    使用示例:
        from ytfa.config import LoggingSettings

        log_config = LoggingSettings(
            level="DEBUG",
            file_path="logs/tfa.log",
        )
    """
    level: str = Field(default="INFO", description="日志级别")
    file_path: str = Field(default="", description="日志文件路径，空字符串表示不写文件")
    file_encoding: str = Field(default="utf-8", description="文件编码")
    enable_console: bool = Field(default=True, description="是否启用控制台输出")

    class Config:
        env_prefix = "YTFA_LOG_"


class AppSettings(BaseSettings):
    """应用基础配置

    将各子配置类聚合为嵌套结构，业务项目继承后只需添加项目特有的配置项。

    配置优先级（从高到低）:
        环境变量 > YAML 配置文件 > 代码中的默认值

    内置子配置及环境变量前缀:
        - tfa:      TfaSettings      (YTFA_)
        - tfa.flood: FloodSettings   (YTFA_FLOOD_)
        - logging:  LoggingSettings  (YTFA_LOG_)

    使用示例:
        from ytfa.config import AppSettings, load_yaml_config

        settings = load_yaml_config("config/settings.yaml", AppSettings)

    YAML 配置示例 (config/settings.yaml):
        tfa:
          enabled: true
          secret_key: "dev-secret"
          validation_plugin: "tfa_totp"
          validation_skip: 2
          flood:
            user_threshold: 5
            uid_only: true
        logging:
          level: "INFO"
    """
    tfa: TfaSettings = Field(default_factory=TfaSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
