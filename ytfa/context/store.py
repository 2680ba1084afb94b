"""TFA 流程上下文存储

按账户 ID 保存唯一的流程上下文。保存是整体覆盖（后写入者生效），
超过存活时间的上下文视为不存在。

使用示例:
    from ytfa.context import InMemoryContextStore, RedisContextStore

    # 单实例
    store = InMemoryContextStore(ttl_seconds=900)

    # 多实例（需要安装 redis 包: pip install redis）
    import redis
    store = RedisContextStore(redis.Redis(host="localhost", port=6379, db=0))

    store.save(context)
    context = store.load(uid)
    store.claim(uid, context.context_id)
    store.clear(uid)
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..log import get_logger
from .models import ProcessContext

logger = get_logger()


class ContextStore(ABC):
    """流程上下文存储抽象基类"""

    @abstractmethod
    def load(self, uid: Any) -> Optional[ProcessContext]:
        """读取账户的流程上下文

        Returns:
            上下文副本，不存在或已过期返回 None
        """
        pass

    @abstractmethod
    def save(self, context: ProcessContext) -> None:
        """保存流程上下文（覆盖该账户已有的上下文）"""
        pass

    @abstractmethod
    def clear(self, uid: Any) -> None:
        """删除账户的流程上下文（不存在时无操作）"""
        pass

    @abstractmethod
    def claim(self, uid: Any, context_id: str) -> bool:
        """原子地认领上下文并标记为已完成

        同一个 context_id 只能被认领一次。多个实例共享同一存储时，
        只有一个提交能够进入登录收尾。

        Returns:
            当前上下文存在、未过期、ID 匹配且尚未完成时返回 True
        """
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """清理过期的上下文

        Returns:
            清理的数量
        """
        pass


class InMemoryContextStore(ContextStore):
    """内存上下文存储

    Args:
        ttl_seconds: 上下文存活时间（秒），0 表示不过期
        time_func: 时间函数（默认 time.time）
    """

    def __init__(self, ttl_seconds: int = 900, time_func: Callable[[], float] = None):
        self.ttl_seconds = ttl_seconds
        self._time = time_func or time.time
        self._contexts: Dict[Any, ProcessContext] = {}
        self._lock = threading.Lock()

    def load(self, uid: Any) -> Optional[ProcessContext]:
        with self._lock:
            context = self._contexts.get(uid)
            if context is None:
                return None
            if context.is_expired(self.ttl_seconds, self._time()):
                del self._contexts[uid]
                return None
            return context.copy()

    def save(self, context: ProcessContext) -> None:
        with self._lock:
            self._contexts[context.uid] = context.copy()

    def clear(self, uid: Any) -> None:
        with self._lock:
            self._contexts.pop(uid, None)

    def claim(self, uid: Any, context_id: str) -> bool:
        with self._lock:
            context = self._contexts.get(uid)
            if context is None or context.context_id != context_id:
                return False
            if context.is_expired(self.ttl_seconds, self._time()):
                del self._contexts[uid]
                return False
            if context.completed:
                return False
            context.completed = True
            return True

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._time()
            expired = [
                uid for uid, context in self._contexts.items()
                if context.is_expired(self.ttl_seconds, now)
            ]
            for uid in expired:
                del self._contexts[uid]
        if expired:
            logger.debug(f"清理过期 TFA 上下文: {len(expired)} 个")
        return len(expired)


class RedisContextStore(ContextStore):
    """Redis 上下文存储

    过期由 Redis 键 TTL 负责。

    Args:
        redis_client: Redis 客户端实例
        prefix: 键前缀
        ttl_seconds: 上下文存活时间（秒）
    """

    def __init__(self, redis_client, prefix: str = "tfa_context:", ttl_seconds: int = 900):
        self._redis = redis_client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, uid: Any) -> str:
        return f"{self.prefix}{uid}"

    def load(self, uid: Any) -> Optional[ProcessContext]:
        data = self._redis.get(self._key(uid))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return ProcessContext.from_dict(json.loads(data))

    def save(self, context: ProcessContext) -> None:
        payload = json.dumps(context.to_dict())
        if self.ttl_seconds:
            self._redis.setex(self._key(context.uid), self.ttl_seconds, payload)
        else:
            self._redis.set(self._key(context.uid), payload)

    def clear(self, uid: Any) -> None:
        self._redis.delete(self._key(uid))

    def claim(self, uid: Any, context_id: str) -> bool:
        context = self.load(uid)
        if context is None or context.context_id != context_id or context.completed:
            return False
        # SET NX 标记保证同一 context_id 只有一个实例认领成功
        claimed = self._redis.set(
            f"{self.prefix}claim:{context_id}", "1",
            nx=True, ex=self.ttl_seconds or None,
        )
        if not claimed:
            return False
        context.completed = True
        self.save(context)
        return True

    def cleanup_expired(self) -> int:
        # Redis 键 TTL 自动过期
        return 0
