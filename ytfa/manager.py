"""TFA 流程编排

TfaManager 是决定一次登录能否继续的唯一入口，
负责 挑战 → 响应 → 建立会话 的完整流程。

流程:
    1. evaluate(): 主凭证验证通过后调用，结果为以下三者之一
        - ALLOW_FINALIZE:    直接建立会话（TFA 未启用、登录放行插件放行、跳过设置等）
        - REQUIRE_CHALLENGE: 需要第二因素验证，携带登录哈希（挑战访问令牌）
        - DENY:              拒绝登录（配置错误、必须设置 TFA、频率限制）
    2. challenge(): 获取当前验证插件的挑战描述
    3. submit():   提交响应，成功后建立会话
    4. fallback(): 切换到下一个备用验证插件

使用示例:
    from ytfa import TfaManager, TfaOutcome

    result = tfa_manager.evaluate(account, client_ip="10.0.0.1", redirect="/dashboard")

    if result.outcome == TfaOutcome.REQUIRE_CHALLENGE:
        # 引导用户到 /tfa/{uid}/{login_hash}
        return redirect_to(f"/tfa/{account.uid}/{result.login_hash}")
    if result.outcome == TfaOutcome.DENY:
        raise result.error

    # 第二步
    result = tfa_manager.submit(account, None, {"code": "123456"}, login_hash)
"""

import threading
import time
import weakref
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .account import TfaAccount, compute_login_hash, verify_login_hash as _verify_login_hash
from .config import TfaSettings
from .context import ContextStore, ProcessContext
from .exceptions import (
    ChallengeMismatch,
    ConfigurationError,
    NoFallbackAvailable,
    SetupRequired,
    TfaException,
    ValidationFailed,
)
from .fallback import FallbackChain
from .flood import FloodCheckResult, FloodControl, FloodScope
from .log import ops_logger, tfa_logger
from .plugins import ChallengeDescriptor, PluginManager, TfaValidationPlugin
from .session import LoginFinalizer
from .userdata import UserDataStore, VALIDATION_PLUGIN, VALIDATION_SKIPPED


class TfaOutcome(str, Enum):
    """流程决策结果"""
    ALLOW_FINALIZE = "allow_finalize"
    REQUIRE_CHALLENGE = "require_challenge"
    DENY = "deny"


class TfaReason(str, Enum):
    """决策原因"""
    # ALLOW_FINALIZE
    DISABLED = "disabled"
    LOGIN_PLUGIN = "login_plugin"
    NOT_REQUIRED = "not_required"
    SKIPPED = "skipped"
    ALREADY_COMPLETE = "already_complete"
    VERIFIED = "verified"
    # REQUIRE_CHALLENGE
    CHALLENGE = "challenge"
    INVALID_CODE = "invalid_code"
    # DENY
    MISCONFIGURED = "misconfigured"
    SETUP_REQUIRED = "setup_required"
    RATE_LIMITED = "rate_limited"
    CHALLENGE_MISMATCH = "challenge_mismatch"
    NO_FALLBACK = "no_fallback"


@dataclass
class TfaResult:
    """流程决策结果

    Attributes:
        outcome: 决策结果
        reason: 决策原因
        error: DENY 或验证失败时的异常（由 HTTP 层抛出）
        login_hash: 挑战访问令牌（REQUIRE_CHALLENGE 时）
        plugin_id: 当前验证插件
        challenge: 挑战描述
        has_fallback: 是否还有可用的备用插件
        redirect: 登录成功后的跳转地址
        session: LoginFinalizer 返回的会话对象
        skip_remaining: 剩余跳过次数（跳过设置时）
        context: 当前流程上下文
        messages: 提示信息
    """
    outcome: TfaOutcome
    reason: TfaReason
    error: Optional[TfaException] = None
    login_hash: Optional[str] = None
    plugin_id: Optional[str] = None
    challenge: Optional[ChallengeDescriptor] = None
    has_fallback: bool = False
    redirect: Optional[str] = None
    session: Any = None
    skip_remaining: Optional[int] = None
    context: Optional[ProcessContext] = None
    messages: List[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.outcome == TfaOutcome.ALLOW_FINALIZE

    @classmethod
    def allow(cls, reason: TfaReason, **kwargs) -> "TfaResult":
        return cls(outcome=TfaOutcome.ALLOW_FINALIZE, reason=reason, **kwargs)

    @classmethod
    def require(cls, reason: TfaReason = TfaReason.CHALLENGE, **kwargs) -> "TfaResult":
        return cls(outcome=TfaOutcome.REQUIRE_CHALLENGE, reason=reason, **kwargs)

    @classmethod
    def deny(cls, reason: TfaReason, error: TfaException, **kwargs) -> "TfaResult":
        return cls(outcome=TfaOutcome.DENY, reason=reason, error=error, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason.value,
            "login_hash": self.login_hash,
            "plugin_id": self.plugin_id,
            "challenge": asdict(self.challenge) if self.challenge else None,
            "has_fallback": self.has_fallback,
            "redirect": self.redirect,
            "skip_remaining": self.skip_remaining,
            "messages": list(self.messages),
        }


class TfaManager:
    """TFA 流程编排器

    Args:
        settings: TFA 配置
        plugin_manager: 插件管理器
        context_store: 流程上下文存储
        flood_control: 频率限制策略
        user_data: 账户级数据存储
        finalizer: 建立最终会话
        time_func: 时间函数（用于上下文创建时间，需要与上下文存储一致）
    """

    def __init__(
        self,
        settings: TfaSettings,
        plugin_manager: PluginManager,
        context_store: ContextStore,
        flood_control: FloodControl,
        user_data: UserDataStore,
        finalizer: LoginFinalizer,
        time_func: Callable[[], float] = None,
    ):
        self.settings = settings
        self.plugins = plugin_manager
        self.store = context_store
        self.flood = flood_control
        self.user_data = user_data
        self.finalizer = finalizer
        self._time = time_func or time.time
        # 没有线程持有的锁会被自动回收
        self._locks: "weakref.WeakValueDictionary[Any, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, uid: Any) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(uid)
            if lock is None:
                lock = self._locks[uid] = threading.Lock()
            return lock

    # ==================== 登录哈希 ====================

    def login_hash(self, account: TfaAccount) -> str:
        """计算账户当前的登录哈希"""
        return compute_login_hash(account, self.settings.secret_key)

    def verify_login_hash(self, account: TfaAccount, login_hash: Optional[str]) -> bool:
        """校验客户端提交的登录哈希"""
        return _verify_login_hash(account, self.settings.secret_key, login_hash)

    # ==================== 上下文 ====================

    def get_context(self, account: TfaAccount) -> Optional[ProcessContext]:
        """获取账户当前的流程上下文"""
        return self.store.load(account.uid)

    def clear_context(self, account: TfaAccount) -> None:
        """清除账户的流程上下文（登出时调用，不存在时无操作）"""
        self.store.clear(account.uid)

    def login_complete(self, account: TfaAccount, context_id: Optional[str] = None) -> bool:
        """本次登录的 TFA 流程是否已完成

        Args:
            account: 账户
            context_id: 只认可该 ID 的流程（为 None 时不限定）
        """
        context = self.store.load(account.uid)
        if context is None or not context.completed:
            return False
        return context_id is None or context.context_id == context_id

    def skip_remaining(self, account: TfaAccount) -> int:
        """剩余可跳过 TFA 设置的次数"""
        skipped = int(self.user_data.get(account.uid, VALIDATION_SKIPPED, 0) or 0)
        return max(0, self.settings.validation_skip - skipped)

    # ==================== 流程 ====================

    def evaluate(
        self,
        account: TfaAccount,
        client_ip: Optional[str] = None,
        redirect: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> TfaResult:
        """主凭证验证通过后决定登录能否继续

        Args:
            account: 已通过主凭证验证的账户
            client_ip: 客户端 IP
            redirect: 登录成功后的跳转地址
            context_id: 调用方持有的流程 ID。只有该流程已验证通过
                （但建立会话失败）时才直接放行，否则开始新的挑战

        Returns:
            TfaResult
        """
        if not self.settings.enabled:
            return self._finalize(account, client_ip, TfaReason.DISABLED, redirect)

        for login_plugin in self.plugins.get_login_plugins(self.settings.login_plugins):
            if login_plugin.login_allowed(account):
                tfa_logger.info(f"登录放行插件跳过 TFA: uid={account.uid}, plugin={login_plugin.plugin_id}")
                return self._finalize(
                    account, client_ip, TfaReason.LOGIN_PLUGIN, redirect, plugin_id=login_plugin.plugin_id
                )

        try:
            plugin = self._resolve_plugin(account)
        except ConfigurationError as e:
            ops_logger.error(f"TFA 配置错误，拒绝登录: uid={account.uid}, details={e.details}")
            return TfaResult.deny(TfaReason.MISCONFIGURED, e)

        with self._lock_for(account.uid):
            if not plugin.ready(account):
                return self._not_ready(account, plugin, client_ip, redirect)

            if context_id is not None and self.login_complete(account, context_id):
                return self._finalize(account, client_ip, TfaReason.ALREADY_COMPLETE, redirect)

            return self._begin(account, plugin, client_ip, redirect)

    def challenge(
        self,
        account: TfaAccount,
        context: Optional[ProcessContext],
        login_hash: str,
        client_ip: Optional[str] = None,
    ) -> TfaResult:
        """获取当前验证插件的挑战描述

        Args:
            account: 账户
            context: 调用方持有的上下文（为 None 时使用存储中的上下文）
            login_hash: 客户端提交的登录哈希（必填，缺失视为不匹配）
            client_ip: 客户端 IP
        """
        stored, failure = self._revalidate(account, context, login_hash)
        if failure is not None:
            return failure

        plugin, failure = self._selected_plugin(account, stored)
        if failure is not None:
            return failure

        check = self.flood.check(account.uid, client_ip, plugin)
        if not check.allowed:
            return self._rate_limited(account, check)

        return self._challenge_result(account, plugin, stored)

    def submit(
        self,
        account: TfaAccount,
        context: Optional[ProcessContext],
        response: Dict[str, Any],
        login_hash: str,
        client_ip: Optional[str] = None,
    ) -> TfaResult:
        """提交验证响应

        验证通过后先在上下文存储中认领本次流程，认领失败（其他实例已完成）
        时按上下文不匹配拒绝，保证同一流程只建立一次会话。

        Args:
            account: 账户
            context: 调用方持有的上下文（为 None 时使用存储中的上下文）
            response: 用户提交的响应
            login_hash: 客户端提交的登录哈希（必填，缺失视为不匹配）
            client_ip: 客户端 IP

        Returns:
            成功: ALLOW_FINALIZE；验证失败: REQUIRE_CHALLENGE + ValidationFailed；其他: DENY
        """
        with self._lock_for(account.uid):
            stored, failure = self._revalidate(account, context, login_hash)
            if failure is not None:
                return failure

            plugin, failure = self._selected_plugin(account, stored)
            if failure is not None:
                return failure

            check = self.flood.check(account.uid, client_ip, plugin)
            if not check.allowed:
                return self._rate_limited(account, check)

            if not plugin.validate_response(account, stored, response or {}):
                self.flood.register_failure(account.uid, client_ip, plugin)
                tfa_logger.info(f"TFA 验证失败: uid={account.uid}, plugin={plugin.plugin_id}")
                result = self._challenge_result(account, plugin, stored)
                result.reason = TfaReason.INVALID_CODE
                result.error = ValidationFailed()
                return result

            if not self.store.claim(account.uid, stored.context_id):
                return self._mismatch(account, "context claimed by another request")
            stored.completed = True

            login_plugins = self.plugins.get_login_plugins(stored.login_plugin_ids)
            for login_plugin in login_plugins:
                if login_plugin.descriptor.supports_submit:
                    login_plugin.on_submit(account, stored, response or {})

            if plugin.descriptor.supports_finalize:
                plugin.finalize(account, stored)
            for login_plugin in login_plugins:
                if login_plugin.descriptor.supports_finalize:
                    login_plugin.finalize(account, stored)

            self.store.save(stored)

            redirect = stored.redirect or self.settings.default_redirect
            try:
                session = self.login(account, client_ip)
            except Exception:
                ops_logger.exception(
                    f"TFA 验证通过但建立会话失败: uid={account.uid}, context_id={stored.context_id}"
                )
                raise
            tfa_logger.info(f"TFA 验证通过: uid={account.uid}, plugin={plugin.plugin_id}")
            return TfaResult.allow(
                TfaReason.VERIFIED,
                plugin_id=plugin.plugin_id,
                redirect=redirect,
                session=session,
            )

    def fallback(
        self,
        account: TfaAccount,
        context: Optional[ProcessContext],
        login_hash: str,
        client_ip: Optional[str] = None,
    ) -> TfaResult:
        """切换到下一个备用验证插件

        消耗流程作用域计数，不消耗当前插件的限制。
        """
        with self._lock_for(account.uid):
            stored, failure = self._revalidate(account, context, login_hash)
            if failure is not None:
                return failure

            check = self.flood.check(account.uid, client_ip, scopes=(FloodScope.USER, FloodScope.BEGIN))
            if not check.allowed:
                return self._rate_limited(account, check)

            plugin = None
            skipped = False
            while plugin is None:
                entry = stored.next_fallback()
                if entry is None:
                    break
                skipped = True
                candidate = self.plugins.find_validation_plugin(entry.plugin_id)
                if candidate is not None and candidate.ready(account):
                    plugin = candidate
                else:
                    ops_logger.warning(f"备用插件已不可用，跳过: uid={account.uid}, plugin={entry.plugin_id}")

            if plugin is None:
                if skipped:
                    self.store.save(stored)
                tfa_logger.info(f"没有可用的备用验证插件: uid={account.uid}")
                return TfaResult.deny(TfaReason.NO_FALLBACK, NoFallbackAvailable(), context=stored)

            if not self.flood.register_begin(account.uid, client_ip):
                return self._rate_limited(account, self.flood.begin_denied())

            stored.selected_plugin_id = plugin.plugin_id
            stored = self._run_begin(account, plugin, stored)
            self.store.save(stored)
            tfa_logger.info(f"切换备用验证插件: uid={account.uid}, plugin={plugin.plugin_id}")
            return self._challenge_result(account, plugin, stored)

    def login(self, account: TfaAccount, client_ip: Optional[str] = None) -> Any:
        """建立最终会话

        清除本次登录的频率限制计数和流程上下文。

        Returns:
            LoginFinalizer 返回的会话对象
        """
        self.flood.clear_user(account.uid, client_ip)
        session = self.finalizer.finalize_login(account, client_ip)
        self.store.clear(account.uid)
        return session

    # ==================== 内部方法 ====================

    def _resolve_plugin(self, account: TfaAccount) -> TfaValidationPlugin:
        preferred = self.user_data.get(account.uid, VALIDATION_PLUGIN)
        if preferred:
            plugin = self.plugins.find_validation_plugin(preferred)
            if plugin is not None and plugin.descriptor.has_setup:
                return plugin
            ops_logger.warning(f"账户偏好的验证插件不可用，使用默认插件: uid={account.uid}, plugin={preferred}")
        return self.plugins.get_primary(self.settings.validation_plugin)

    def _not_ready(
        self,
        account: TfaAccount,
        plugin: TfaValidationPlugin,
        client_ip: Optional[str],
        redirect: Optional[str],
    ) -> TfaResult:
        if not account.requires_tfa:
            return self._finalize(account, client_ip, TfaReason.NOT_REQUIRED, redirect)

        skipped = self.user_data.increment(account.uid, VALIDATION_SKIPPED, limit=self.settings.validation_skip)
        if skipped is not None:
            remaining = max(0, self.settings.validation_skip - skipped)
            tfa_logger.info(f"账户未设置 TFA，跳过验证: uid={account.uid}, remaining={remaining}")
            result = self._finalize(account, client_ip, TfaReason.SKIPPED, redirect, plugin_id=plugin.plugin_id)
            result.skip_remaining = remaining
            result.messages.append(
                f"You are required to setup two-factor authentication. "
                f"You have {remaining} attempts left."
            )
            return result

        tfa_logger.info(f"账户未设置 TFA 且跳过次数已用完，拒绝登录: uid={account.uid}")
        return TfaResult.deny(TfaReason.SETUP_REQUIRED, SetupRequired(), plugin_id=plugin.plugin_id, skip_remaining=0)

    def _begin(
        self,
        account: TfaAccount,
        plugin: TfaValidationPlugin,
        client_ip: Optional[str],
        redirect: Optional[str],
    ) -> TfaResult:
        check = self.flood.check(account.uid, client_ip, plugin)
        if not check.allowed:
            return self._rate_limited(account, check)
        if not self.flood.register_begin(account.uid, client_ip):
            return self._rate_limited(account, self.flood.begin_denied())

        previous = self.store.load(account.uid)
        if previous is not None and not previous.completed:
            tfa_logger.info(f"替换进行中的 TFA 流程: uid={account.uid}, context_id={previous.context_id}")

        context = ProcessContext(
            uid=account.uid,
            selected_plugin_id=plugin.plugin_id,
            fallback_queue=FallbackChain.build(plugin, account, self.settings.fallback_plugins, self.plugins),
            redirect=redirect,
            attempts_remaining_by_skip=self.skip_remaining(account),
            created_at=self._time(),
            login_plugin_ids=list(self.settings.login_plugins),
        )
        context = self._run_begin(account, plugin, context)
        self.store.save(context)
        return self._challenge_result(account, plugin, context)

    def _run_begin(
        self,
        account: TfaAccount,
        plugin: TfaValidationPlugin,
        context: ProcessContext,
    ) -> ProcessContext:
        """执行插件 begin 钩子

        钩子在上下文副本上执行，失败时记录日志并返回原上下文。
        """
        if not plugin.descriptor.supports_begin:
            return context
        working = context.copy()
        try:
            plugin.begin(account, working)
        except Exception:
            ops_logger.exception(f"TFA 插件 begin 钩子执行失败: uid={account.uid}, plugin={plugin.plugin_id}")
            return context
        return working

    def _revalidate(
        self,
        account: TfaAccount,
        context: Optional[ProcessContext],
        login_hash: Optional[str],
    ) -> Tuple[Optional[ProcessContext], Optional[TfaResult]]:
        """用存储中最新的上下文校验调用方持有的上下文"""
        if not login_hash or not self.verify_login_hash(account, login_hash):
            return None, self._mismatch(account, "login hash does not match")

        if context is not None and context.uid != account.uid:
            return None, self._mismatch(account, f"context belongs to uid={context.uid}")

        stored = self.store.load(account.uid)
        if stored is None:
            return None, self._mismatch(account, "no active context")
        if stored.uid != account.uid:
            return None, self._mismatch(account, f"stored context belongs to uid={stored.uid}")
        if stored.completed or (context is not None and context.completed):
            return None, self._mismatch(account, "context already completed")
        if context is not None and context.context_id != stored.context_id:
            return None, self._mismatch(account, "context has been superseded")
        return stored, None

    def _mismatch(self, account: TfaAccount, detail: str) -> TfaResult:
        tfa_logger.warning(f"TFA 上下文不匹配，拒绝请求: uid={account.uid}, reason={detail}")
        return TfaResult.deny(TfaReason.CHALLENGE_MISMATCH, ChallengeMismatch())

    def _selected_plugin(
        self,
        account: TfaAccount,
        context: ProcessContext,
    ) -> Tuple[Optional[TfaValidationPlugin], Optional[TfaResult]]:
        try:
            return self.plugins.get_validation_plugin(context.selected_plugin_id), None
        except ConfigurationError as e:
            ops_logger.error(f"TFA 配置错误，拒绝请求: uid={account.uid}, details={e.details}")
            return None, TfaResult.deny(TfaReason.MISCONFIGURED, e)

    def _rate_limited(self, account: TfaAccount, check: FloodCheckResult) -> TfaResult:
        tfa_logger.info(
            f"TFA 频率限制，拒绝请求: uid={account.uid}, scope={check.event}, wait={check.wait_minutes}min"
        )
        return TfaResult.deny(TfaReason.RATE_LIMITED, check.to_error(), messages=list(check.messages))

    def _challenge_result(
        self,
        account: TfaAccount,
        plugin: TfaValidationPlugin,
        context: ProcessContext,
    ) -> TfaResult:
        return TfaResult.require(
            login_hash=self.login_hash(account),
            plugin_id=plugin.plugin_id,
            challenge=plugin.build_challenge(account, context),
            has_fallback=context.has_fallback,
            context=context,
        )

    def _finalize(
        self,
        account: TfaAccount,
        client_ip: Optional[str],
        reason: TfaReason,
        redirect: Optional[str],
        plugin_id: Optional[str] = None,
    ) -> TfaResult:
        session = self.login(account, client_ip)
        return TfaResult.allow(
            reason,
            plugin_id=plugin_id,
            redirect=redirect or self.settings.default_redirect,
            session=session,
        )
