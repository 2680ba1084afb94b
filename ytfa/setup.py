"""TFA 一站式设置模块

提供 setup_tfa() 便捷函数，组装插件管理器、上下文存储、频率限制和会话，
返回可直接使用的 TfaManager。

使用示例:

    最简（全部内存实现）::

        from ytfa import setup_tfa
        from ytfa.config import TfaSettings

        tfa = setup_tfa(
            TfaSettings(enabled=True, secret_key="...", validation_plugin="tfa_totp"),
            plugins=[TotpPlugin(), RecoveryCodePlugin()],
        )
        result = tfa.manager.evaluate(account, client_ip="10.0.0.1")

    多实例部署::

        import redis
        from sqlalchemy import create_engine
        from ytfa.context import RedisContextStore
        from ytfa.flood import DatabaseFloodBackend

        flood_backend = DatabaseFloodBackend(create_engine("postgresql://..."))
        flood_backend.create_tables()

        tfa = setup_tfa(
            settings,
            plugins=[...],
            context_store=RedisContextStore(redis.Redis(), ttl_seconds=settings.context_ttl_seconds),
            flood_backend=flood_backend,
        )

    挂载路由::

        tfa.mount_routes(app, account_loader=load_account, prefix="/tfa")
"""

import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .account import TfaAccount
from .config import TfaSettings
from .context import ContextStore, InMemoryContextStore
from .flood import FloodBackend, FloodControl, MemoryFloodBackend
from .log import get_logger
from .manager import TfaManager
from .plugins import PluginManager, TfaPlugin
from .session import LoginFinalizer, SessionLoginFinalizer, SessionManager
from .userdata import InMemoryUserDataStore, UserDataStore

logger = get_logger()


@dataclass
class TfaSetup:
    """TFA 设置返回对象

    属性:
        manager: TfaManager 实例
        plugin_manager: 插件管理器
        context_store: 流程上下文存储
        flood_control: 频率限制策略
        user_data: 账户级数据存储
        finalizer: 会话建立接口
        session_manager: 默认会话管理器（使用自定义 finalizer 时为 None）
    """
    manager: TfaManager
    plugin_manager: PluginManager
    context_store: ContextStore
    flood_control: FloodControl
    user_data: UserDataStore
    finalizer: LoginFinalizer
    session_manager: Optional[SessionManager] = None

    def mount_routes(
        self,
        app,
        account_loader: Callable[[str], Optional[TfaAccount]],
        prefix: str = "/tfa",
        tags: Optional[List[str]] = None,
        trusted_proxies: Optional[List[str]] = None,
        register_handlers: bool = True,
    ) -> None:
        """挂载 TFA 验证路由

        Args:
            app: FastAPI 应用
            account_loader: 根据 uid 加载账户
            prefix: 路由前缀
            tags: OpenAPI 标签
            trusted_proxies: 受信任的代理地址
            register_handlers: 是否同时注册全局异常处理器
        """
        from .api import create_tfa_router
        from .exceptions import register_exception_handlers

        cookie_name = self.session_manager.cookie_name if self.session_manager else "session_id"
        router = create_tfa_router(
            self.manager,
            account_loader,
            trusted_proxies=trusted_proxies,
            session_cookie_name=cookie_name,
        )
        app.include_router(router, prefix=prefix, tags=tags or ["tfa"])
        if register_handlers:
            register_exception_handlers(app)
        logger.info(f"TFA 路由已挂载: prefix={prefix}")


def setup_tfa(
    settings: TfaSettings = None,
    plugins: Iterable[TfaPlugin] = (),
    context_store: ContextStore = None,
    flood_backend: FloodBackend = None,
    user_data: UserDataStore = None,
    finalizer: LoginFinalizer = None,
    time_func: Callable[[], float] = None,
) -> TfaSetup:
    """组装 TFA 组件

    未提供的组件使用内存实现。启动时检查插件约束，违反时抛出 ConfigurationError。

    Args:
        settings: TFA 配置（默认从环境变量读取）
        plugins: 验证插件和登录放行插件
        context_store: 流程上下文存储
        flood_backend: 频率限制事件存储
        user_data: 账户级数据存储
        finalizer: 会话建立接口
        time_func: 时间函数（测试时注入）

    Returns:
        TfaSetup
    """
    settings = settings or TfaSettings()
    time_func = time_func or time.time

    plugin_manager = PluginManager()
    for plugin in plugins:
        plugin_manager.register(plugin)
    plugin_manager.check_definitions()

    if context_store is None:
        context_store = InMemoryContextStore(ttl_seconds=settings.context_ttl_seconds, time_func=time_func)
    flood_control = FloodControl(flood_backend or MemoryFloodBackend(time_func), settings.flood)
    user_data = user_data or InMemoryUserDataStore()

    session_manager = None
    if finalizer is None:
        session_manager = SessionManager()
        finalizer = SessionLoginFinalizer(session_manager)

    manager = TfaManager(
        settings=settings,
        plugin_manager=plugin_manager,
        context_store=context_store,
        flood_control=flood_control,
        user_data=user_data,
        finalizer=finalizer,
        time_func=time_func,
    )
    logger.debug(
        f"TFA 已初始化: enabled={settings.enabled}, "
        f"validation_plugins={list(plugin_manager.get_definitions())}"
    )
    return TfaSetup(
        manager=manager,
        plugin_manager=plugin_manager,
        context_store=context_store,
        flood_control=flood_control,
        user_data=user_data,
        finalizer=finalizer,
        session_manager=session_manager,
    )
