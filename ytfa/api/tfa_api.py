"""TFA 验证端点路由

登录第一步（用户名密码）由宿主系统处理，evaluate() 返回 REQUIRE_CHALLENGE 时，
客户端携带 uid 和登录哈希访问以下端点完成第二步。

端点列表：
    GET  /{uid}/{login_hash}           - 获取挑战描述
    POST /{uid}/{login_hash}           - 提交验证响应
    POST /{uid}/{login_hash}/fallback  - 切换到下一个备用验证方式

使用示例::

    from ytfa.api import create_tfa_router

    tfa_router = create_tfa_router(tfa_manager, account_loader=load_account)
    app.include_router(tfa_router, prefix="/tfa", tags=["tfa"])
"""

import ipaddress
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from fastapi import APIRouter, Request
from pydantic import BaseModel as PydanticBaseModel, Field

from ..account import TfaAccount
from ..exceptions import Err
from ..response import Resp
from ..session import Session, set_session_cookie

if TYPE_CHECKING:
    from ..manager import TfaManager, TfaResult


def _is_trusted(host: str, trusted_proxies: List[str]) -> bool:
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    for entry in trusted_proxies:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_ip(request: Request, trusted_proxies: Optional[List[str]] = None) -> Optional[str]:
    """获取客户端 IP

    只有直连地址属于受信任代理（支持 CIDR）时才读取 X-Forwarded-For / X-Real-IP。
    """
    direct_ip = request.client.host if request.client else None
    if not direct_ip or not trusted_proxies or not _is_trusted(direct_ip, trusted_proxies):
        return direct_ip

    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.headers.get("X-Real-IP", "").strip() or direct_ip


def create_tfa_router(
    tfa_manager: "TfaManager",
    account_loader: Callable[[str], Optional[TfaAccount]],
    trusted_proxies: Optional[List[str]] = None,
    session_cookie_name: str = "session_id",
    secure_cookie: bool = True,
) -> APIRouter:
    """创建 TFA 验证端点路由

    路由层只做参数验证、调用 TfaManager、包装响应。
    DENY 和验证失败的结果以异常抛出，由全局异常处理器渲染。

    Args:
        tfa_manager: TfaManager 实例
        account_loader: 根据路径中的 uid 加载账户 (uid) -> TfaAccount，不存在返回 None
        trusted_proxies: 受信任的代理地址列表
        session_cookie_name: 登录成功后写入的会话 Cookie 名称
        secure_cookie: 会话 Cookie 是否仅限 HTTPS

    Returns:
        APIRouter
    """
    router = APIRouter()

    class SubmitRequest(PydanticBaseModel):
        """验证响应"""
        response: Dict[str, Any] = Field(default_factory=dict, description="验证插件需要的字段", examples=[{"code": "123456"}])

    def _load(uid: str) -> TfaAccount:
        account = account_loader(uid)
        if account is None:
            # 与哈希不匹配的响应一致，不暴露账户是否存在
            raise Err.mismatch()
        return account

    def _respond(result: "TfaResult", message: str):
        if result.error is not None:
            raise result.error
        if not result.allowed:
            return Resp.Info(message, data=result.to_dict(), msg_details=list(result.messages))
        response = Resp.OK(result.to_dict(), message)
        if isinstance(result.session, Session):
            set_session_cookie(response, result.session, cookie_name=session_cookie_name, secure=secure_cookie)
        return response

    @router.get("/{uid}/{login_hash}", summary="获取 TFA 挑战")
    def get_challenge(request: Request, uid: str, login_hash: str):
        """获取当前验证插件的挑战描述"""
        account = _load(uid)
        result = tfa_manager.challenge(
            account,
            None,
            client_ip=get_client_ip(request, trusted_proxies),
            login_hash=login_hash,
        )
        return _respond(result, "请完成两步验证")

    @router.post("/{uid}/{login_hash}", summary="提交 TFA 验证")
    def submit_response(request: Request, uid: str, login_hash: str, body: SubmitRequest):
        """提交验证响应，成功后建立会话"""
        account = _load(uid)
        result = tfa_manager.submit(
            account,
            None,
            body.response,
            client_ip=get_client_ip(request, trusted_proxies),
            login_hash=login_hash,
        )
        return _respond(result, "登录成功")

    @router.post("/{uid}/{login_hash}/fallback", summary="切换备用验证方式")
    def use_fallback(request: Request, uid: str, login_hash: str):
        """切换到下一个备用验证插件"""
        account = _load(uid)
        result = tfa_manager.fallback(
            account,
            None,
            client_ip=get_client_ip(request, trusted_proxies),
            login_hash=login_hash,
        )
        return _respond(result, "已切换验证方式")

    return router
