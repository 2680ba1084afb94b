"""日志模块测试"""

import logging

from ytfa.config import LoggingSettings
from ytfa.log import (
    MicrosecondFormatter,
    create_formatter,
    get_logger,
    ops_logger,
    setup_logger,
    setup_root_logger,
    tfa_logger,
)


class TestGetLogger:
    """get_logger 测试"""

    def test_infer_module_name(self):
        """测试无参数时使用调用模块名"""
        assert get_logger().name == __name__

    def test_short_name_prefixed(self):
        """测试简写名自动添加前缀"""
        assert get_logger("tfa").name == "ytfa.tfa"
        assert get_logger("ytfa.ops").name == "ytfa.ops"
        assert get_logger("uvicorn.error").name == "uvicorn.error"

    def test_dedicated_loggers(self):
        """测试安全事件和运维事件日志器"""
        assert tfa_logger.name == "ytfa.tfa"
        assert ops_logger.name == "ytfa.ops"


class TestSetupLogger:
    """setup_logger 测试"""

    def test_file_handler(self, tmp_path):
        """测试写入日志文件并自动创建目录"""
        log_file = tmp_path / "logs" / "tfa.log"
        test_logger = setup_logger("ytfa.test_file", level="DEBUG", log_file=str(log_file), console=False)

        test_logger.debug("挑战不匹配")
        for handler in test_logger.handlers:
            handler.flush()

        assert test_logger.level == logging.DEBUG
        assert "挑战不匹配" in log_file.read_text(encoding="utf-8")

        for handler in test_logger.handlers:
            handler.close()
        test_logger.handlers.clear()

    def test_handlers_replaced(self):
        """测试重复配置不会叠加处理器"""
        setup_logger("ytfa.test_repeat")
        test_logger = setup_logger("ytfa.test_repeat")

        assert len(test_logger.handlers) == 1
        test_logger.handlers.clear()

    def test_root_logger_from_config(self):
        """测试从 LoggingSettings 配置根日志器"""
        root = logging.getLogger()
        saved = (root.level, list(root.handlers), root.propagate)
        try:
            configured = setup_root_logger(config=LoggingSettings(level="WARNING"))

            assert configured is root
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
        finally:
            root.setLevel(saved[0])
            root.handlers[:] = saved[1]
            root.propagate = saved[2]


class TestFormatter:
    """格式化器测试"""

    def test_microseconds(self):
        """测试微秒精度时间戳"""
        record = logging.LogRecord("ytfa", logging.INFO, __file__, 1, "msg", None, None)
        record.created = 1_700_000_000.123456

        formatted = MicrosecondFormatter(fmt="%(asctime)s").format(record)

        assert formatted.endswith(".123456") or formatted.endswith(".123455")

    def test_plain_formatter(self):
        """测试关闭微秒精度"""
        formatter = create_formatter(use_microseconds=False)

        assert not isinstance(formatter, MicrosecondFormatter)
