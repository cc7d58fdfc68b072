"""
日志配置
应用日志走标准 logging；需要审计的业务事件另外写入 logs 表
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """为 cafeteria 包安装一个控制台 handler（重复调用只调整级别）"""
    global _configured
    logger = logging.getLogger("cafeteria")
    logger.setLevel(level.upper())
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
