"""日志模块

提供 TFA 流程使用的日志配置：
- 日志配置与管理
- 按模块名自动推断日志器
- 安全事件 / 运维事件专用日志器

使用示例:
    from ytfa.log import setup_logger, get_logger, tfa_logger

    # 创建自定义日志记录器
    logger = setup_logger("my_app", level="DEBUG", log_file="logs/app.log")

    # 模块内获取日志器（自动推断模块名）
    logger = get_logger()
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    tfa_logger,
    ops_logger,
    logger,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "tfa_logger",
    "ops_logger",
    "logger",
    "get_logger",
]
