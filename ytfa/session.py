"""登录会话

TFA 流程结束时由 LoginFinalizer 建立最终会话。核心只调用接口，
宿主系统可以替换为自己的会话实现。

默认实现 SessionLoginFinalizer:
    - 销毁该账户尚未通过 MFA 的旧会话，签发新的会话 ID（防会话固定）
    - 标记会话已通过 MFA 验证
    - 更新账户 last_login_at（旧的登录哈希随即失效）

使用示例:
    from ytfa.session import SessionManager, SessionLoginFinalizer, set_session_cookie

    sessions = SessionManager(expire_minutes=30)
    finalizer = SessionLoginFinalizer(sessions)

    session = finalizer.finalize_login(account, client_ip="10.0.0.1")
    set_session_cookie(response, session)
"""

import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from fastapi import Response

from .log import get_logger

if TYPE_CHECKING:
    from .account import TfaAccount

logger = get_logger()


@dataclass
class Session:
    """会话对象

    Attributes:
        session_id: 会话 ID
        uid: 账户 ID
        created_at: 创建时间
        expires_at: 过期时间
        ip_address: 客户端 IP
        mfa_verified: 是否已通过 MFA 验证
        mfa_verified_at: MFA 验证时间
        data: 会话数据
    """
    session_id: str
    uid: Any
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    mfa_verified: bool = False
    mfa_verified_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "uid": self.uid,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "mfa_verified": self.mfa_verified,
        }


def generate_session_id(length: int = 32) -> str:
    """生成会话 ID"""
    return secrets.token_urlsafe(length)


class SessionManager:
    """内存会话管理器

    Args:
        expire_minutes: 会话过期时间（分钟）
        cookie_name: Cookie 名称
    """

    def __init__(self, expire_minutes: int = 30, cookie_name: str = "session_id"):
        self.expire_seconds = expire_minutes * 60
        self.cookie_name = cookie_name
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create_session(self, uid: Any, ip_address: str = None, data: Dict[str, Any] = None) -> Session:
        """创建会话"""
        now = datetime.now(timezone.utc)
        session = Session(
            session_id=generate_session_id(),
            uid=uid,
            created_at=now,
            expires_at=now + timedelta(seconds=self.expire_seconds),
            ip_address=ip_address,
            data=data or {},
        )
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        """获取会话，过期返回 None"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_expired():
                del self._sessions[session_id]
                return None
            return session

    def get_user_sessions(self, uid: Any) -> List[Session]:
        """获取账户的所有有效会话"""
        with self._lock:
            return [s for s in self._sessions.values() if s.uid == uid and not s.is_expired()]

    def destroy_session(self, session_id: str) -> bool:
        """销毁会话"""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def regenerate_session(self, session_id: str) -> Optional[Session]:
        """以新的会话 ID 替换旧会话，保留会话数据"""
        with self._lock:
            old = self._sessions.pop(session_id, None)
            if old is None:
                return None
            session = Session(
                session_id=generate_session_id(),
                uid=old.uid,
                created_at=old.created_at,
                expires_at=old.expires_at,
                ip_address=old.ip_address,
                mfa_verified=old.mfa_verified,
                mfa_verified_at=old.mfa_verified_at,
                data=dict(old.data),
            )
            self._sessions[session.session_id] = session
            return session

    def set_mfa_verified(self, session_id: str) -> bool:
        """标记会话已通过 MFA 验证"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.mfa_verified = True
            session.mfa_verified_at = datetime.now(timezone.utc)
            return True


class LoginFinalizer(ABC):
    """建立最终登录会话的接口"""

    @abstractmethod
    def finalize_login(self, account: "TfaAccount", client_ip: Optional[str] = None) -> Any:
        """建立会话

        Returns:
            宿主定义的会话对象（原样放入 TfaResult.session）
        """
        pass


class SessionLoginFinalizer(LoginFinalizer):
    """基于 SessionManager 的默认实现

    Args:
        session_manager: 会话管理器
        time_func: 返回当前 datetime 的函数（用于更新 last_login_at）
    """

    def __init__(
        self,
        session_manager: SessionManager,
        time_func: Callable[[], datetime] = None,
    ):
        self.session_manager = session_manager
        self._now = time_func or (lambda: datetime.now(timezone.utc))

    def finalize_login(self, account: "TfaAccount", client_ip: Optional[str] = None) -> Session:
        for stale in self.session_manager.get_user_sessions(account.uid):
            if not stale.mfa_verified:
                self.session_manager.destroy_session(stale.session_id)

        session = self.session_manager.create_session(account.uid, ip_address=client_ip)
        self.session_manager.set_mfa_verified(session.session_id)
        account.last_login_at = self._now()
        logger.debug(f"登录会话已建立: uid={account.uid}")
        return session


def set_session_cookie(
    response: Response,
    session: Session,
    cookie_name: str = "session_id",
    secure: bool = True,
    samesite: str = "lax",
):
    """设置会话 Cookie"""
    max_age = None
    if session.expires_at:
        max_age = int((session.expires_at - datetime.now(timezone.utc)).total_seconds())
    response.set_cookie(
        key=cookie_name,
        value=session.session_id,
        httponly=True,
        secure=secure,
        samesite=samesite,
        max_age=max_age,
    )
