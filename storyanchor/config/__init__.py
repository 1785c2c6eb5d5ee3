import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_environment(dotenv_path: str = None) -> bool:
    """
    把 .env 中的 API Key、DATABASE_URL 等写入进程环境变量。
    已存在的环境变量不会被覆盖。
    """
    loaded = load_dotenv(dotenv_path)
    if loaded:
        logger.debug("已从 .env 加载环境变量")
    return loaded
