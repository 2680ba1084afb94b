"""版本信息"""

__version__ = "0.1.0"
__author__ = "yweb team"
__description__ = "YWeb 两步验证（TFA）流程编排"
