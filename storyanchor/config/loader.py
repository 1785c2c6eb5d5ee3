"""
配置加载器 (Config Loader)
读取 config.yaml、user_config.yaml 与 provider_templates.yaml，并合并为运行时配置。
"""
import yaml
import os
import sys
import logging
from storyanchor.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/storyanchor.db"

# user_config.yaml 中可覆盖的分区
MERGEABLE_SECTIONS = ("models", "steps", "database")


def get_resource_path(relative_path: str) -> str:
    """
    获取资源的正确路径
    """
    try:
        base_path = sys._MEIPASS
    except Exception:
        base_path = os.path.abspath(".")

    return os.path.join(base_path, relative_path)

CONFIG_PATH = get_resource_path("config.yaml")
USER_CONFIG_PATH = get_resource_path("user_config.yaml")
PROVIDER_TEMPLATES_PATH = get_resource_path("provider_templates.yaml")


def _merge_configs(base_config: dict, user_config: dict) -> dict:
    """
    合并基础配置和用户配置。
    用户配置中的 'models'、'steps'、'database' 部分会覆盖或扩展基础配置。
    """
    merged_config = dict(base_config)

    for section in MERGEABLE_SECTIONS:
        if section in user_config:
            merged_config[section] = dict(merged_config.get(section) or {})
            merged_config[section].update(user_config[section] or {})

    return merged_config


def _read_yaml(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if data else {}
    except yaml.YAMLError as e:
        logger.error(f"解析 {path} 文件失败: {e}", exc_info=True)
        raise ConfigurationError(f"错误: 解析 {path} 文件失败: {e}")


def load_user_config() -> dict:
    """
    加载并解析 user_config.yaml 文件。
    """
    if not os.path.exists(USER_CONFIG_PATH):
        return {}
    return _read_yaml(USER_CONFIG_PATH)


def load_config() -> dict:
    """
    加载并解析 config.yaml 和 user_config.yaml 文件，并进行合并。
    """
    if not os.path.exists(CONFIG_PATH):
        logger.warning(f"配置文件 {CONFIG_PATH} 未找到，返回默认空配置。")
        return {"models": {}, "steps": {}}

    base_config = _read_yaml(CONFIG_PATH)
    return _merge_configs(base_config, load_user_config())


def load_provider_templates() -> dict:
    """
    加载并解析 provider_templates.yaml 文件。
    """
    if not os.path.exists(PROVIDER_TEMPLATES_PATH):
        logger.warning(f"提供商模板文件 {PROVIDER_TEMPLATES_PATH} 未找到，返回空模板。")
        return {}
    return _read_yaml(PROVIDER_TEMPLATES_PATH)


def get_database_url(config: dict) -> str:
    """环境变量 DATABASE_URL 优先，其次是配置中的 database.url。"""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return (config.get("database") or {}).get("url") or DEFAULT_DATABASE_URL
