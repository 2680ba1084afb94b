"""
YTFA - 两步验证（TFA）流程编排

在主凭证验证与最终建立会话之间，决定是否需要第二因素、
驱动挑战/响应流程、管理备用验证方式、执行多级频率限制
"""

from .version import __version__, __author__, __description__

# 导出账户
from .account import (
    TfaAccount,
    REQUIRE_TFA_PERMISSION,
    compute_login_hash,
    verify_login_hash,
)

# 导出流程编排
from .manager import (
    TfaManager,
    TfaResult,
    TfaOutcome,
    TfaReason,
)

# 导出插件
from .plugins import (
    PluginDescriptor,
    ChallengeDescriptor,
    TfaPlugin,
    TfaValidationPlugin,
    TfaLoginPlugin,
    PluginManager,
)

# 导出流程上下文
from .context import (
    ProcessContext,
    FallbackEntry,
    ContextStore,
    InMemoryContextStore,
    RedisContextStore,
)

# 导出频率限制
from .flood import (
    FloodBackend,
    MemoryFloodBackend,
    DatabaseFloodBackend,
    FloodControl,
    FloodLimit,
    FloodScope,
)

from .fallback import FallbackChain

# 导出会话与账户数据
from .session import LoginFinalizer, SessionLoginFinalizer, SessionManager
from .userdata import UserDataStore, InMemoryUserDataStore

# 导出异常
from .exceptions import (
    ErrorCode,
    BusinessException,
    TfaException,
    ConfigurationError,
    RateLimited,
    ChallengeMismatch,
    ValidationFailed,
    NoFallbackAvailable,
    SetupRequired,
    Err,
    register_exception_handlers,
)

# 导出一站式设置
from .setup import setup_tfa, TfaSetup

__all__ = [
    # 版本
    "__version__",
    "__author__",
    "__description__",
    # 账户
    "TfaAccount",
    "REQUIRE_TFA_PERMISSION",
    "compute_login_hash",
    "verify_login_hash",
    # 流程编排
    "TfaManager",
    "TfaResult",
    "TfaOutcome",
    "TfaReason",
    # 插件
    "PluginDescriptor",
    "ChallengeDescriptor",
    "TfaPlugin",
    "TfaValidationPlugin",
    "TfaLoginPlugin",
    "PluginManager",
    # 流程上下文
    "ProcessContext",
    "FallbackEntry",
    "ContextStore",
    "InMemoryContextStore",
    "RedisContextStore",
    # 频率限制
    "FloodBackend",
    "MemoryFloodBackend",
    "DatabaseFloodBackend",
    "FloodControl",
    "FloodLimit",
    "FloodScope",
    "FallbackChain",
    # 会话与账户数据
    "LoginFinalizer",
    "SessionLoginFinalizer",
    "SessionManager",
    "UserDataStore",
    "InMemoryUserDataStore",
    # 异常
    "ErrorCode",
    "BusinessException",
    "TfaException",
    "ConfigurationError",
    "RateLimited",
    "ChallengeMismatch",
    "ValidationFailed",
    "NoFallbackAvailable",
    "SetupRequired",
    "Err",
    "register_exception_handlers",
    # 一站式设置
    "setup_tfa",
    "TfaSetup",
]
