"""TfaManager.evaluate 测试"""

import logging
import threading

import pytest

from ytfa import TfaOutcome, TfaReason, setup_tfa
from ytfa.exceptions import ConfigurationError, RateLimited, SetupRequired
from ytfa.flood import BEGIN_EVENT, USER_EVENT
from ytfa.userdata import InMemoryUserDataStore, VALIDATION_PLUGIN, VALIDATION_SKIPPED

from tests.helpers import RecordingFinalizer, make_validation_plugin


def no_flood_events(tfa, uid):
    backend = tfa.flood_control.backend
    identifier = tfa.flood_control.identifier(uid)
    return (
        backend.is_allowed(USER_EVENT, 1, 3600, identifier)
        and backend.is_allowed(BEGIN_EVENT, 1, 3600, identifier)
    )


class TestEvaluateShortcuts:
    """无需挑战的路径"""

    def test_disabled(self, tfa_settings, totp_plugin, finalizer, account):
        """测试 TFA 未启用时直接建立会话"""
        tfa_settings.enabled = False
        manager = setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=finalizer).manager

        result = manager.evaluate(account, redirect="/dashboard")

        assert result.outcome == TfaOutcome.ALLOW_FINALIZE
        assert result.reason == TfaReason.DISABLED
        assert result.redirect == "/dashboard"
        assert result.session == "session-1"
        assert len(finalizer.calls) == 1

    def test_login_plugin_allows(self, manager, tfa, trusted_device, finalizer, account):
        """测试登录放行插件放行"""
        trusted_device.allowed = True

        result = manager.evaluate(account, client_ip="10.0.0.1")

        assert result.outcome == TfaOutcome.ALLOW_FINALIZE
        assert result.reason == TfaReason.LOGIN_PLUGIN
        assert result.plugin_id == "tfa_trusted_device"
        assert result.redirect == "/home"
        assert finalizer.calls == [(1, "10.0.0.1")]
        assert manager.get_context(account) is None
        assert no_flood_events(tfa, account.uid)

    def test_login_plugin_wins_regardless_of_readiness(self, manager, totp_plugin, trusted_device, required_account):
        """测试登录放行插件放行时不考虑验证插件是否就绪"""
        trusted_device.allowed = True
        totp_plugin.is_ready = False
        manager.user_data.set(required_account.uid, VALIDATION_SKIPPED, 99)

        for _ in range(3):
            assert manager.evaluate(required_account).outcome == TfaOutcome.ALLOW_FINALIZE

    def test_not_required_and_not_ready(self, manager, totp_plugin, finalizer, account):
        """测试未被要求 TFA 且未设置时直接建立会话"""
        totp_plugin.is_ready = False

        result = manager.evaluate(account)

        assert result.outcome == TfaOutcome.ALLOW_FINALIZE
        assert result.reason == TfaReason.NOT_REQUIRED
        assert len(finalizer.calls) == 1
        assert manager.user_data.get(account.uid, VALIDATION_SKIPPED) is None


class TestEvaluateMisconfigured:
    """配置错误"""

    def test_unregistered_default_plugin(self, tfa_settings, totp_plugin, finalizer, account, caplog):
        """测试默认验证插件未注册时拒绝登录并记录运维日志"""
        tfa_settings.validation_plugin = "tfa_missing"
        tfa = setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=finalizer)

        with caplog.at_level(logging.ERROR, logger="ytfa.ops"):
            result = tfa.manager.evaluate(account)

        assert result.outcome == TfaOutcome.DENY
        assert result.reason == TfaReason.MISCONFIGURED
        assert isinstance(result.error, ConfigurationError)
        assert finalizer.calls == []
        assert no_flood_events(tfa, account.uid)
        assert any(r.name == "ytfa.ops" and r.levelno == logging.ERROR for r in caplog.records)

    def test_no_default_plugin(self, tfa_settings, finalizer, account):
        """测试未配置验证插件"""
        tfa_settings.validation_plugin = None
        manager = setup_tfa(tfa_settings, finalizer=finalizer).manager

        result = manager.evaluate(account)

        assert result.reason == TfaReason.MISCONFIGURED

    def test_default_plugin_without_setup(self, tfa_settings, finalizer, account):
        """测试没有设置流程的插件不能作为主验证插件"""
        plugin = make_validation_plugin("tfa_totp", has_setup=False)
        manager = setup_tfa(tfa_settings, plugins=[plugin], finalizer=finalizer).manager

        assert manager.evaluate(account).reason == TfaReason.MISCONFIGURED


class TestEvaluateSetup:
    """账户未设置 TFA"""

    def test_required_without_allowance_always_denied(self, manager, totp_plugin, required_account):
        """测试被要求 TFA、未设置且没有跳过次数时始终拒绝，不会要求挑战"""
        totp_plugin.is_ready = False
        manager.settings.validation_skip = 0

        for _ in range(5):
            result = manager.evaluate(required_account)
            assert result.outcome == TfaOutcome.DENY
            assert result.reason == TfaReason.SETUP_REQUIRED
            assert isinstance(result.error, SetupRequired)
            assert result.login_hash is None

    def test_skip_allowance_then_deny(self, manager, totp_plugin, finalizer, required_account):
        """测试跳过次数为 2 时前两次放行，第三次拒绝"""
        totp_plugin.is_ready = False
        manager.settings.validation_skip = 2

        first = manager.evaluate(required_account)
        second = manager.evaluate(required_account)
        third = manager.evaluate(required_account)

        assert (first.outcome, first.reason, first.skip_remaining) == (TfaOutcome.ALLOW_FINALIZE, TfaReason.SKIPPED, 1)
        assert (second.outcome, second.reason, second.skip_remaining) == (TfaOutcome.ALLOW_FINALIZE, TfaReason.SKIPPED, 0)
        assert third.outcome == TfaOutcome.DENY
        assert third.reason == TfaReason.SETUP_REQUIRED
        assert manager.user_data.get(required_account.uid, VALIDATION_SKIPPED) == 2
        assert len(finalizer.calls) == 2
        assert "1 attempts left" in first.messages[0]

    def test_skip_allowance_persists_across_managers(self, tfa_settings, totp_plugin, finalizer, required_account):
        """测试跳过次数保存在账户数据中"""
        totp_plugin.is_ready = False
        tfa_settings.validation_skip = 1
        tfa = setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=finalizer)
        tfa.manager.evaluate(required_account)

        again = setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=finalizer, user_data=tfa.user_data)

        assert again.manager.evaluate(required_account).reason == TfaReason.SETUP_REQUIRED

    def test_concurrent_logins_share_single_skip(self, tfa_settings, totp_plugin, finalizer, required_account):
        """测试两个实例并发登录时只消耗一次跳过机会"""
        totp_plugin.is_ready = False
        tfa_settings.validation_skip = 1
        user_data = InMemoryUserDataStore()
        instances = [
            setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=finalizer, user_data=user_data).manager
            for _ in range(2)
        ]
        totp_plugin.ready_barrier = threading.Barrier(2)
        results = []

        def worker(instance):
            results.append(instance.evaluate(required_account))

        threads = [threading.Thread(target=worker, args=(instance,)) for instance in instances]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.reason.value for r in results) == [
            TfaReason.SETUP_REQUIRED.value,
            TfaReason.SKIPPED.value,
        ]
        assert user_data.get(required_account.uid, VALIDATION_SKIPPED) == 1
        assert len(finalizer.calls) == 1

    def test_concurrent_logins_same_instance(self, manager, totp_plugin, finalizer, required_account):
        """测试同一实例并发登录时跳过次数不超发"""
        totp_plugin.is_ready = False
        manager.settings.validation_skip = 2
        barrier = threading.Barrier(6)
        results = []

        def worker():
            barrier.wait()
            results.append(manager.evaluate(required_account))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reasons = [r.reason for r in results]
        assert reasons.count(TfaReason.SKIPPED) == 2
        assert reasons.count(TfaReason.SETUP_REQUIRED) == 4
        assert manager.user_data.get(required_account.uid, VALIDATION_SKIPPED) == 2


class TestEvaluateChallenge:
    """需要挑战"""

    def test_require_challenge(self, manager, totp_plugin, finalizer, required_account):
        """测试被要求 TFA、已设置、跳过次数为 0 时要求挑战"""
        manager.settings.validation_skip = 0

        result = manager.evaluate(required_account, redirect="/dashboard")

        assert result.outcome == TfaOutcome.REQUIRE_CHALLENGE
        assert result.reason == TfaReason.CHALLENGE
        assert result.login_hash
        assert result.login_hash == manager.login_hash(required_account)
        assert result.plugin_id == "tfa_totp"
        assert result.challenge.fields == [{"name": "code", "type": "text"}]
        assert result.has_fallback is True
        assert totp_plugin.begin_calls == [required_account.uid]
        assert finalizer.calls == []

    def test_context_created(self, manager, account):
        """测试创建流程上下文"""
        manager.evaluate(account, redirect="/dashboard")

        context = manager.get_context(account)

        assert context.uid == account.uid
        assert context.selected_plugin_id == "tfa_totp"
        assert [e.plugin_id for e in context.fallback_queue] == ["tfa_recovery_code", "tfa_sms"]
        assert context.redirect == "/dashboard"
        assert context.completed is False
        assert context.attempts_remaining_by_skip == 3
        assert context.login_plugin_ids == ["tfa_trusted_device"]
        assert context.data == {"tfa_totp_sent": True}

    def test_begin_scope_registered(self, manager, tfa, account):
        """测试发起流程登记流程作用域事件"""
        manager.evaluate(account)

        identifier = tfa.flood_control.identifier(account.uid)
        assert tfa.flood_control.backend.is_allowed(BEGIN_EVENT, 1, 3600, identifier) is False

    def test_new_begin_supersedes_context(self, manager, account, caplog):
        """测试再次发起流程替换旧上下文"""
        manager.evaluate(account)
        first = manager.get_context(account)

        with caplog.at_level(logging.INFO, logger="ytfa.tfa"):
            manager.evaluate(account)

        assert manager.get_context(account).context_id != first.context_id
        assert first.context_id in caplog.text

    def test_begin_runs_under_account_lock(self, manager, totp_plugin, account):
        """测试 begin 钩子在持有账户锁时同步执行，返回的挑战已包含钩子写入的数据"""
        held = []
        original = totp_plugin.begin

        def begin(acc, context):
            held.append(manager._lock_for(acc.uid).locked())
            original(acc, context)

        totp_plugin.begin = begin

        result = manager.evaluate(account)

        assert held == [True]
        assert result.context.data == {"tfa_totp_sent": True}

    def test_begin_failure_logged_without_corrupting_context(self, tfa_settings, finalizer, account, caplog):
        """测试 begin 钩子失败时记录日志，上下文不被部分修改"""
        plugin = make_validation_plugin(
            "tfa_totp", supports_begin=True, begin_error=RuntimeError("sms gateway down")
        )
        manager = setup_tfa(tfa_settings, plugins=[plugin], finalizer=finalizer).manager

        with caplog.at_level(logging.ERROR, logger="ytfa.ops"):
            result = manager.evaluate(account)

        assert result.outcome == TfaOutcome.REQUIRE_CHALLENGE
        assert manager.get_context(account).data == {}
        assert "sms gateway down" in caplog.text

    def test_begin_hook_only_when_declared(self, tfa_settings, finalizer, account):
        """测试未声明 supports_begin 时不调用 begin"""
        plugin = make_validation_plugin("tfa_totp")
        manager = setup_tfa(tfa_settings, plugins=[plugin], finalizer=finalizer).manager

        manager.evaluate(account)

        assert plugin.begin_calls == []

    def test_begin_rate_limited(self, manager, finalizer, account):
        """测试发起流程次数达到阈值"""
        for _ in range(6):
            assert manager.evaluate(account).outcome == TfaOutcome.REQUIRE_CHALLENGE

        result = manager.evaluate(account)

        assert result.outcome == TfaOutcome.DENY
        assert result.reason == TfaReason.RATE_LIMITED
        assert isinstance(result.error, RateLimited)
        assert result.error.scope == BEGIN_EVENT
        assert result.error.wait_minutes == 60
        assert finalizer.calls == []

    def test_preferred_plugin(self, manager, account):
        """测试使用账户偏好的验证插件"""
        manager.user_data.set(account.uid, VALIDATION_PLUGIN, "tfa_sms")

        result = manager.evaluate(account)

        assert result.plugin_id == "tfa_sms"

    def test_unavailable_preferred_plugin_uses_default(self, manager, account):
        """测试偏好的插件不可用时使用默认插件"""
        manager.user_data.set(account.uid, VALIDATION_PLUGIN, "tfa_removed")

        assert manager.evaluate(account).plugin_id == "tfa_totp"

    def test_already_complete_bound_to_context_id(self, tfa_settings, totp_plugin, account):
        """测试只有携带已验证流程的 ID 时才直接建立会话"""
        failing = RecordingFinalizer(fail=True)
        manager = setup_tfa(tfa_settings, plugins=[totp_plugin], finalizer=failing).manager
        started = manager.evaluate(account)
        with pytest.raises(RuntimeError):
            manager.submit(account, None, {"code": "123456"}, started.login_hash)
        assert manager.login_complete(account, started.context.context_id) is True
        assert manager.login_complete(account, "another-attempt") is False

        failing.fail = False
        result = manager.evaluate(account, context_id=started.context.context_id)

        assert result.outcome == TfaOutcome.ALLOW_FINALIZE
        assert result.reason == TfaReason.ALREADY_COMPLETE
        assert manager.get_context(account) is None
