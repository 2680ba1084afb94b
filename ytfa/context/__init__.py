"""TFA 流程上下文模块"""

from .models import FallbackEntry, ProcessContext, new_context_id
from .store import ContextStore, InMemoryContextStore, RedisContextStore

__all__ = [
    "FallbackEntry",
    "ProcessContext",
    "new_context_id",
    "ContextStore",
    "InMemoryContextStore",
    "RedisContextStore",
]
