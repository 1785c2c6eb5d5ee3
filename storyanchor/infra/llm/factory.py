"""
聊天模型工厂 (LLM Factory)
按生成步骤的别名实例化 LangChain 聊天模型：

    steps.<alias> -> models.<model_id> -> provider_templates.<template> -> class(**params)

模型类、参数名与密钥来源全部写在 config.yaml / provider_templates.yaml 里，
更换模型提供商不需要改代码。
"""
import os
import importlib
import logging
from functools import lru_cache
from typing import Tuple
from storyanchor.config.loader import load_config, load_provider_templates
from storyanchor.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# 模板 params 中的取值类型
PARAM_LITERAL = "string"
PARAM_FROM_ENV = ("secret_env", "url_env")


@lru_cache(maxsize=1)
def get_provider_templates() -> dict:
    return load_provider_templates()


def _config_error(message: str) -> ConfigurationError:
    logger.error(message)
    return ConfigurationError(message)


def _import_model_class(class_path: str):
    """'package.module.ClassName' -> 类对象"""
    module_name, _, attr = class_path.rpartition(".")
    if not module_name:
        raise _config_error(f"模型类路径 '{class_path}' 不合法，应为 'module.ClassName'")
    try:
        return getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise _config_error(f"无法导入模型类 '{class_path}'，请确认对应的 LangChain 包已安装: {e}")


def _resolve_step(alias: str, config: dict, templates: dict) -> Tuple[str, dict, dict]:
    """沿 steps -> models -> templates 找到模型配置与提供商模板"""
    model_id = (config.get("steps") or {}).get(alias)
    if not model_id:
        raise _config_error(f"生成步骤 '{alias}' 未在 config.yaml 的 steps 中绑定模型")

    model_config = (config.get("models") or {}).get(model_id)
    if not model_config:
        raise _config_error(f"步骤 '{alias}' 指向的模型 '{model_id}' 未在 models 中定义")

    template_id = model_config.get("template")
    template = templates.get(template_id) if template_id else None
    if not template:
        raise _config_error(f"模型 '{model_id}' 的提供商模板 '{template_id}' 不存在")
    if not template.get("class"):
        raise _config_error(f"提供商模板 '{template_id}' 缺少 class 字段")

    return model_id, model_config, template


def _constructor_params(model_id: str, model_config: dict, template: dict) -> dict:
    params = {}
    for name, kind in (template.get("params") or {}).items():
        value = model_config.get(name)
        if value is None:
            continue
        if kind == PARAM_LITERAL:
            params[name] = value
        elif kind in PARAM_FROM_ENV:
            # api_key_env: ANTHROPIC_API_KEY -> api_key=<环境变量的值>
            env_value = os.getenv(value)
            if not env_value:
                raise _config_error(f"模型 '{model_id}' 需要环境变量 {value}，但它未被设置")
            params[name[:-len("_env")] if name.endswith("_env") else name] = env_value
        else:
            logger.warning(f"忽略提供商模板中未知的参数类型 {name}: {kind}")
    return params


def get_llm(alias: str, temperature: float = 0.7, config: dict = None, templates: dict = None, **overrides):
    """
    为生成步骤实例化聊天模型。

    Args:
        alias: steps 中的步骤名，例如 "drafter"。
        temperature: 采样温度。
        config: 运行时配置，缺省时重新读取 config.yaml（以便反映配置文件的修改）。
        templates: 提供商模板，缺省时读取 provider_templates.yaml。
        **overrides: 直接传给模型构造函数的参数，例如 max_tokens。

    Raises:
        ConfigurationError: 配置链条中任何一环缺失，或模型无法实例化。
    """
    config = load_config() if config is None else config
    templates = get_provider_templates() if templates is None else templates

    model_id, model_config, template = _resolve_step(alias, config, templates)
    model_class = _import_model_class(template["class"])

    params = {"temperature": temperature}
    params.update(_constructor_params(model_id, model_config, template))
    params.update(overrides)

    logger.info(f"步骤 '{alias}' 使用模型 {model_id} ({model_class.__name__})")
    try:
        return model_class(**params)
    except Exception as e:
        raise _config_error(f"实例化模型 '{model_id}' 失败: {e}") from e
