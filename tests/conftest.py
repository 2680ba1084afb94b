"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 可推进的时钟
- 账户
- 插件替身
- 组装好的 TfaManager
- 数据库引擎
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ytfa import TfaAccount, REQUIRE_TFA_PERMISSION, setup_tfa
from ytfa.config import FloodSettings, TfaSettings

from tests.helpers import (
    FakeClock,
    RecordingFinalizer,
    make_login_plugin,
    make_validation_plugin,
)


# ==================== 基础 Fixtures ====================

@pytest.fixture
def clock():
    """可推进的时钟"""
    return FakeClock()


@pytest.fixture
def account():
    """未被要求 TFA 的账户"""
    return TfaAccount(uid=1, username="alice", password_hash="$2b$12$alice", last_login_at=1_690_000_000)


@pytest.fixture
def required_account():
    """被要求必须使用 TFA 的账户"""
    return TfaAccount(
        uid=2,
        username="bob",
        password_hash="$2b$12$bob",
        last_login_at=1_690_000_000,
        permissions={REQUIRE_TFA_PERMISSION},
    )


@pytest.fixture
def other_account():
    """另一个账户"""
    return TfaAccount(uid=3, username="carol", password_hash="$2b$12$carol", last_login_at=1_690_000_000)


# ==================== 插件 Fixtures ====================

@pytest.fixture
def totp_plugin():
    """主验证插件"""
    return make_validation_plugin(
        "tfa_totp",
        label="TOTP",
        fallbacks=("tfa_recovery_code", "tfa_sms"),
        supports_begin=True,
        supports_finalize=True,
    )


@pytest.fixture
def recovery_plugin():
    """备用插件（weight 1）"""
    return make_validation_plugin("tfa_recovery_code", label="Recovery code", is_fallback=True)


@pytest.fixture
def sms_plugin():
    """备用插件（weight 2），发起时发送短信"""
    return make_validation_plugin("tfa_sms", label="SMS", code="654321", is_fallback=True, supports_begin=True)


@pytest.fixture
def trusted_device():
    """登录放行插件（默认不放行）"""
    return make_login_plugin("tfa_trusted_device", supports_submit=True, supports_finalize=True)


# ==================== TFA Fixtures ====================

@pytest.fixture
def tfa_settings():
    """TFA 配置"""
    return TfaSettings(
        enabled=True,
        secret_key="test-secret-key-for-testing-only",
        validation_plugin="tfa_totp",
        login_plugins=["tfa_trusted_device"],
        fallback_plugins={
            "tfa_totp": {
                "tfa_recovery_code": {"enable": True, "weight": 1},
                "tfa_sms": {"enable": True, "weight": 2},
            },
        },
        validation_skip=3,
        default_redirect="/home",
        flood=FloodSettings(user_threshold=3, user_window=900, begin_threshold=6, window=3600, uid_only=True),
    )


@pytest.fixture
def finalizer():
    """记录调用次数的会话接口"""
    return RecordingFinalizer()


@pytest.fixture
def tfa(tfa_settings, totp_plugin, recovery_plugin, sms_plugin, trusted_device, finalizer, clock):
    """组装好的 TFA 组件"""
    return setup_tfa(
        tfa_settings,
        plugins=[totp_plugin, recovery_plugin, sms_plugin, trusted_device],
        finalizer=finalizer,
        time_func=clock,
    )


@pytest.fixture
def manager(tfa):
    """TfaManager"""
    return tfa.manager


# ==================== FastAPI Fixtures ====================

@pytest.fixture
def api_tfa(tfa_settings, totp_plugin, recovery_plugin, sms_plugin, trusted_device, clock):
    """使用默认会话实现的 TFA 组件"""
    return setup_tfa(
        tfa_settings,
        plugins=[totp_plugin, recovery_plugin, sms_plugin, trusted_device],
        time_func=clock,
    )


@pytest.fixture
def app(api_tfa, account, required_account):
    """挂载了 TFA 路由的测试应用"""
    accounts = {str(a.uid): a for a in (account, required_account)}
    test_app = FastAPI(title="TFA Test App")
    api_tfa.mount_routes(test_app, account_loader=accounts.get, prefix="/tfa")
    return test_app


@pytest.fixture
def client(app):
    """创建测试客户端"""
    return TestClient(app)


# ==================== 数据库 Fixtures ====================

@pytest.fixture(scope="function")
def memory_engine():
    """创建内存数据库引擎

    使用 StaticPool 和 check_same_thread=False，所有操作共用同一个连接。
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()
