"""
Prompt 仓库
生成服务使用的系统提示与正文模板都放在同目录的 prompts.yaml 中，
文件修改后下一次读取自动生效，调整措辞不必重启进程。
"""
import os
import logging
import yaml
from langchain_core.prompts import PromptTemplate

logger = logging.getLogger(__name__)

PROMPTS_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompts.yaml")


class PromptCache:
    """按文件修改时间失效的 prompts.yaml 缓存"""

    def __init__(self, path: str = PROMPTS_PATH):
        self.path = path
        self._prompts = {}
        self._loaded_mtime = None

    def invalidate(self):
        self._loaded_mtime = None

    def load(self) -> dict:
        try:
            mtime = os.path.getmtime(self.path)
        except OSError:
            logger.error(f"Prompt 文件不存在: {self.path}")
            self._prompts, self._loaded_mtime = {}, None
            return self._prompts

        if mtime != self._loaded_mtime:
            with open(self.path, "r", encoding="utf-8") as f:
                self._prompts = yaml.safe_load(f) or {}
            self._loaded_mtime = mtime
            logger.info(f"已加载 {len(self._prompts)} 个 Prompt 模板 ({self.path})")
        return self._prompts


_cache = PromptCache()


def get_prompt_text(prompt_key: str) -> str:
    text = _cache.load().get(prompt_key)
    if not text:
        raise ValueError(f"prompts.yaml 中没有名为 '{prompt_key}' 的 Prompt")
    return text


def get_prompt_template(prompt_key: str) -> PromptTemplate:
    """以 f-string 语法解析的 LangChain 模板"""
    return PromptTemplate.from_template(get_prompt_text(prompt_key))


def force_reload_prompts():
    """下一次读取时无条件重新解析 prompts.yaml"""
    _cache.invalidate()
    logger.info("已请求重新加载 Prompt 模板")
