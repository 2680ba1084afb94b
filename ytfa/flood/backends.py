"""防洪（频率限制）事件存储

按 (事件名, 标识符) 记录事件，只统计时间窗口内的事件。
本模块只做计数，不包含任何策略；策略见 ytfa.flood.control。

使用示例:
    from ytfa.flood import MemoryFloodBackend

    flood = MemoryFloodBackend()

    if flood.is_allowed("tfa_user", threshold=6, window=900, identifier="1-10.0.0.1"):
        flood.register("tfa_user", window=900, identifier="1-10.0.0.1")

    # 检查并登记（原子操作，并发请求不会同时通过阈值检查）
    allowed = flood.attempt("tfa_begin", threshold=6, window=3600, identifier="1")

    # 登录成功后清除
    flood.clear("tfa_user", "1-10.0.0.1")
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple


@dataclass
class FloodEvent:
    """频率限制事件

    Attributes:
        name: 事件名（作用域）
        identifier: 标识符（uid 或 uid-IP）
        timestamp: 发生时间
        expiration: 过期时间（之后可被垃圾回收）
    """
    name: str
    identifier: str
    timestamp: float
    expiration: float


class FloodBackend(ABC):
    """频率限制存储抽象基类

    Args:
        time_func: 时间函数（默认 time.time，测试时可注入）
    """

    def __init__(self, time_func: Callable[[], float] = None):
        self._time = time_func or time.time

    @abstractmethod
    def is_allowed(self, name: str, threshold: int, window: int = 3600, identifier: str = "") -> bool:
        """窗口内事件数是否低于阈值

        Args:
            name: 事件名
            threshold: 阈值，事件数达到阈值时返回 False
            window: 时间窗口（秒）
            identifier: 标识符

        Returns:
            True 表示允许继续
        """
        pass

    @abstractmethod
    def register(self, name: str, window: int = 3600, identifier: str = "") -> None:
        """登记一次事件

        Args:
            name: 事件名
            window: 事件保留时长（秒）
            identifier: 标识符
        """
        pass

    @abstractmethod
    def clear(self, name: str, identifier: Optional[str] = None) -> None:
        """清除事件

        Args:
            name: 事件名
            identifier: 标识符，为 None 时清除该事件名下所有标识符
        """
        pass

    @abstractmethod
    def attempt(self, name: str, threshold: int, window: int = 3600, identifier: str = "") -> bool:
        """原子地检查并登记

        允许时登记一次事件并返回 True；达到阈值时不登记，返回 False。
        """
        pass

    @abstractmethod
    def garbage_collection(self) -> int:
        """清理已过期的事件

        Returns:
            清理的事件数
        """
        pass


class MemoryFloodBackend(FloodBackend):
    """内存频率限制存储

    线程安全的内存实现，适合单实例部署。
    多实例部署请使用 DatabaseFloodBackend。
    """

    def __init__(self, time_func: Callable[[], float] = None):
        super().__init__(time_func)
        # (name, identifier) -> [(timestamp, expiration), ...]
        self._events: Dict[Tuple[str, str], List[Tuple[float, float]]] = {}
        self._lock = threading.Lock()

    def _count(self, name: str, identifier: str, window: int, now: float) -> int:
        events = self._events.get((name, identifier), [])
        return sum(1 for timestamp, _ in events if timestamp > now - window)

    def is_allowed(self, name: str, threshold: int, window: int = 3600, identifier: str = "") -> bool:
        with self._lock:
            return self._count(name, identifier, window, self._time()) < threshold

    def register(self, name: str, window: int = 3600, identifier: str = "") -> None:
        with self._lock:
            now = self._time()
            self._events.setdefault((name, identifier), []).append((now, now + window))

    def clear(self, name: str, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is not None:
                self._events.pop((name, identifier), None)
                return
            for key in [key for key in self._events if key[0] == name]:
                del self._events[key]

    def attempt(self, name: str, threshold: int, window: int = 3600, identifier: str = "") -> bool:
        with self._lock:
            now = self._time()
            if self._count(name, identifier, window, now) >= threshold:
                return False
            self._events.setdefault((name, identifier), []).append((now, now + window))
            return True

    def garbage_collection(self) -> int:
        with self._lock:
            now = self._time()
            cleaned = 0
            for key in list(self._events):
                alive = [event for event in self._events[key] if event[1] > now]
                cleaned += len(self._events[key]) - len(alive)
                if alive:
                    self._events[key] = alive
                else:
                    del self._events[key]
            return cleaned

    def get_events(self, name: str, identifier: str) -> List[FloodEvent]:
        """获取事件列表（管理员查看）"""
        with self._lock:
            return [
                FloodEvent(name=name, identifier=identifier, timestamp=ts, expiration=exp)
                for ts, exp in self._events.get((name, identifier), [])
            ]
