"""账户级 TFA 数据存储

保存跨登录周期的账户数据，例如：
    - validation_skipped: 已跳过验证的次数
    - validation_plugin:  用户偏好的验证插件

持久化由宿主系统负责，这里只定义接口和一个内存实现。

使用示例:
    from ytfa.userdata import InMemoryUserDataStore

    store = InMemoryUserDataStore()
    store.set(1, "validation_plugin", "tfa_totp")
    store.get(1, "validation_skipped", 0)
    store.increment(1, "validation_skipped", limit=3)
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

# 已跳过验证次数
VALIDATION_SKIPPED = "validation_skipped"
# 用户选择的验证插件
VALIDATION_PLUGIN = "validation_plugin"


class UserDataStore(ABC):
    """账户级数据存储抽象基类"""

    @abstractmethod
    def get(self, uid: Any, key: str, default: Any = None) -> Any:
        """读取数据"""
        pass

    @abstractmethod
    def set(self, uid: Any, key: str, value: Any) -> None:
        """写入数据"""
        pass

    @abstractmethod
    def delete(self, uid: Any, key: str = None) -> None:
        """删除数据（key 为 None 时删除该账户全部数据）"""
        pass

    @abstractmethod
    def increment(self, uid: Any, key: str, limit: int = None) -> Optional[int]:
        """原子地将计数加一

        实现必须保证读取、比较、写入是一个原子操作
        （数据库可用条件 UPDATE，Redis 可用 Lua 脚本）。

        Args:
            uid: 账户 ID
            key: 计数键
            limit: 上限，当前值已达到上限时不加一

        Returns:
            加一后的值；已达到上限返回 None
        """
        pass


class InMemoryUserDataStore(UserDataStore):
    """内存账户数据存储

    适用于单实例部署和测试，重启后数据丢失。
    """

    def __init__(self):
        self._data: Dict[Any, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, uid: Any, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(uid, {}).get(key, default)

    def set(self, uid: Any, key: str, value: Any) -> None:
        with self._lock:
            self._data.setdefault(uid, {})[key] = value

    def delete(self, uid: Any, key: str = None) -> None:
        with self._lock:
            if key is None:
                self._data.pop(uid, None)
            else:
                self._data.get(uid, {}).pop(key, None)

    def increment(self, uid: Any, key: str, limit: int = None) -> Optional[int]:
        with self._lock:
            current = int(self._data.get(uid, {}).get(key, 0) or 0)
            if limit is not None and current >= limit:
                return None
            self._data.setdefault(uid, {})[key] = current + 1
            return current + 1
