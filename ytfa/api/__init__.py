"""TFA API 路由"""

from .tfa_api import create_tfa_router, get_client_ip

__all__ = [
    "create_tfa_router",
    "get_client_ip",
]
