"""账户与登录哈希

TFA 核心只引用账户，不负责账户存储。宿主系统可以直接构造 TfaAccount，
或通过 TfaAccount.from_user() 从自己的用户模型转换。

登录哈希（挑战访问令牌）:
    HMAC-SHA256(secret_key, "username:password_hash:last_login")，URL 安全 Base64。
    登录成功后 last_login 更新，旧哈希随即失效。
"""

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Set, Union

# 要求 TFA 的权限标识
REQUIRE_TFA_PERMISSION = "require tfa"


@dataclass
class TfaAccount:
    """参与 TFA 流程的账户

    Attributes:
        uid: 账户唯一标识
        username: 用户名
        password_hash: 密码哈希（仅用于计算登录哈希）
        last_login_at: 最后登录时间（时间戳或 datetime）
        permissions: 权限标识集合
    """
    uid: Any
    username: str
    password_hash: str = ""
    last_login_at: Optional[Union[int, float, datetime]] = None
    permissions: Set[str] = field(default_factory=set)

    @property
    def requires_tfa(self) -> bool:
        """账户是否被要求必须使用 TFA"""
        return self.has_permission(REQUIRE_TFA_PERMISSION)

    def has_permission(self, permission: str) -> bool:
        """检查是否拥有指定权限"""
        return permission in self.permissions

    @classmethod
    def from_user(cls, user: Any, permissions: Set[str] = None) -> "TfaAccount":
        """从宿主用户对象构造账户

        依次读取 user.id、user.username、user.password_hash、user.last_login_at。

        Args:
            user: 宿主用户对象
            permissions: 权限集合，未提供时读取 user.permissions
        """
        if permissions is None:
            permissions = set(getattr(user, "permissions", None) or [])
        return cls(
            uid=user.id,
            username=user.username,
            password_hash=getattr(user, "password_hash", "") or "",
            last_login_at=getattr(user, "last_login_at", None),
            permissions=set(permissions),
        )


def _last_login_value(value: Optional[Union[int, float, datetime]]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    return str(int(value))


def compute_login_hash(account: TfaAccount, secret_key: str) -> str:
    """计算账户的登录哈希

    Args:
        account: 账户
        secret_key: 签名密钥

    Returns:
        URL 安全的 Base64 字符串（无填充）
    """
    data = ":".join([
        str(account.username),
        account.password_hash or "",
        _last_login_value(account.last_login_at),
    ])
    digest = hmac.new(secret_key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_login_hash(account: TfaAccount, secret_key: str, login_hash: Optional[str]) -> bool:
    """重新计算并比较登录哈希（常量时间比较）"""
    if not login_hash:
        return False
    expected = compute_login_hash(account, secret_key)
    return hmac.compare_digest(expected.encode("ascii"), login_hash.encode("ascii", errors="replace"))
