"""TFA 频率限制模块

- FloodBackend: 事件存储接口（MemoryFloodBackend / DatabaseFloodBackend）
- FloodControl: 用户 / 流程 / 插件三级作用域的检查策略

使用示例:
    from ytfa.flood import FloodControl, MemoryFloodBackend
    from ytfa.config import FloodSettings

    control = FloodControl(MemoryFloodBackend(), FloodSettings(uid_only=True))
"""

from .backends import FloodEvent, FloodBackend, MemoryFloodBackend
from .control import (
    USER_EVENT,
    BEGIN_EVENT,
    FloodLimit,
    FloodScope,
    FloodCheckResult,
    FloodControl,
)
from .database import FloodBase, FloodRecord, DatabaseFloodBackend

__all__ = [
    "FloodEvent",
    "FloodBackend",
    "MemoryFloodBackend",
    "DatabaseFloodBackend",
    "FloodBase",
    "FloodRecord",
    "USER_EVENT",
    "BEGIN_EVENT",
    "FloodLimit",
    "FloodScope",
    "FloodCheckResult",
    "FloodControl",
]
