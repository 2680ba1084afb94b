"""TFA 流程上下文

每个账户同时只有一个进行中的流程上下文，记录选中的验证插件、
备用插件队列、登录后跳转地址等。上下文对插件是只读的，
插件需要跨请求保存的数据放在 data 字段中。
"""

import copy
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def new_context_id() -> str:
    """生成上下文 ID（每次发起流程都不同，用于识别被替换的旧上下文）"""
    return secrets.token_urlsafe(16)


@dataclass
class FallbackEntry:
    """备用插件队列项"""
    plugin_id: str
    weight: int = 0
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"plugin_id": self.plugin_id, "weight": self.weight, "enabled": self.enabled}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FallbackEntry":
        return cls(
            plugin_id=data["plugin_id"],
            weight=int(data.get("weight", 0)),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class ProcessContext:
    """TFA 流程上下文

    Attributes:
        uid: 账户 ID（创建后不可更改）
        context_id: 上下文 ID
        selected_plugin_id: 当前验证插件
        fallback_queue: 备用插件队列（已按遍历顺序排列）
        redirect: 登录成功后的跳转地址
        completed: 流程是否已完成
        attempts_remaining_by_skip: 发起流程时剩余的跳过次数
        created_at: 创建时间（时间戳）
        login_plugin_ids: 本次流程启用的登录放行插件
        data: 插件自定义数据
    """
    uid: Any
    selected_plugin_id: str
    context_id: str = field(default_factory=new_context_id)
    fallback_queue: List[FallbackEntry] = field(default_factory=list)
    redirect: Optional[str] = None
    completed: bool = False
    attempts_remaining_by_skip: int = 0
    created_at: float = field(default_factory=time.time)
    login_plugin_ids: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "uid" and "uid" in self.__dict__:
            raise AttributeError("ProcessContext.uid is immutable")
        super().__setattr__(name, value)

    @property
    def has_fallback(self) -> bool:
        """队列中是否还有可用的备用插件"""
        return any(entry.enabled for entry in self.fallback_queue)

    def next_fallback(self) -> Optional[FallbackEntry]:
        """取出下一个启用的备用插件（从队列中移除）"""
        while self.fallback_queue:
            entry = self.fallback_queue.pop(0)
            if entry.enabled:
                return entry
        return None

    def is_expired(self, ttl_seconds: int, now: float = None) -> bool:
        """是否超过存活时间"""
        if not ttl_seconds:
            return False
        if now is None:
            now = time.time()
        return now - self.created_at >= ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "context_id": self.context_id,
            "selected_plugin_id": self.selected_plugin_id,
            "fallback_queue": [entry.to_dict() for entry in self.fallback_queue],
            "redirect": self.redirect,
            "completed": self.completed,
            "attempts_remaining_by_skip": self.attempts_remaining_by_skip,
            "created_at": self.created_at,
            "login_plugin_ids": list(self.login_plugin_ids),
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessContext":
        return cls(
            uid=data["uid"],
            context_id=data["context_id"],
            selected_plugin_id=data["selected_plugin_id"],
            fallback_queue=[FallbackEntry.from_dict(item) for item in data.get("fallback_queue", [])],
            redirect=data.get("redirect"),
            completed=bool(data.get("completed", False)),
            attempts_remaining_by_skip=int(data.get("attempts_remaining_by_skip", 0)),
            created_at=float(data.get("created_at", time.time())),
            login_plugin_ids=list(data.get("login_plugin_ids", [])),
            data=dict(data.get("data", {})),
        )

    def copy(self) -> "ProcessContext":
        """深拷贝（存储层用来隔离调用方的修改）"""
        return copy.deepcopy(self)
