import logging
import logging.handlers
import os
import sys

LOG_DIR = "logs"
LOG_FILENAME = "app.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _handlers(log_dir: str):
    rotating = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, LOG_FILENAME),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    return [rotating, logging.StreamHandler(sys.stdout)]


def setup_logging(log_dir: str = LOG_DIR, level: str = None):
    """
    初始化根日志：滚动文件 (logs/app.log) + 标准输出。
    级别取参数 level，其次环境变量 LOG_LEVEL，默认 INFO。重复调用不会产生重复输出。
    """
    os.makedirs(log_dir, exist_ok=True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _handlers(log_dir):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # warnings.warn 的输出同样进入日志
    logging.captureWarnings(True)
    logging.getLogger(__name__).debug(f"日志已初始化，输出目录: {os.path.abspath(log_dir)}")
