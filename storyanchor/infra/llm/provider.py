"""
文本生成提供方 (Text Generation Provider)
把 prompt 交给 LangChain 聊天模型，返回文本与 token 用量，并把 HTTP 层错误映射为领域异常。
不做任何自动重试，重试策略属于调用方。
"""
import logging
from typing import Callable, Optional
from langchain_core.messages import HumanMessage, SystemMessage
from storyanchor.core.exceptions import (
    ProviderAuthError, ProviderRateLimitError, ProviderOverloadError, ProviderGenericError
)
from storyanchor.core.schemas import ProviderResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8000
DEFAULT_TEMPERATURE = 0.7

AUTH_STATUS_CODES = (401, 403)
RATE_LIMIT_STATUS_CODES = (429,)
OVERLOAD_STATUS_CODES = (503, 529)


def _status_code(exc: Exception) -> Optional[int]:
    """从 SDK 异常中取出 HTTP 状态码 (anthropic / openai 的 APIStatusError 均带 status_code)"""
    code = getattr(exc, "status_code", None)
    if code is None:
        response = getattr(exc, "response", None)
        code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def map_provider_error(exc: Exception):
    """把底层调用异常转换为带分类标签的领域异常"""
    code = _status_code(exc)
    if code in AUTH_STATUS_CODES:
        return ProviderAuthError("无效的 API Key，请检查配置")
    if code in RATE_LIMIT_STATUS_CODES:
        return ProviderRateLimitError("API 调用频率超限，请稍后再试")
    if code in OVERLOAD_STATUS_CODES:
        return ProviderOverloadError("API 服务暂时过载，请稍后再试")
    return ProviderGenericError(f"API 调用失败: {exc}")


def _message_text(message) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    # Anthropic 等模型可能返回内容块列表
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _tokens_used(message) -> int:
    usage = getattr(message, "usage_metadata", None) or {}
    total = usage.get("total_tokens")
    if total is None:
        total = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
    return int(total or 0)


def _stop_reason(message) -> Optional[str]:
    metadata = getattr(message, "response_metadata", None) or {}
    return metadata.get("stop_reason") or metadata.get("finish_reason")


class TextGenerationProvider:
    """
    对聊天模型的一层薄封装。

    Args:
        llm_factory: 形如 ``llm_factory(temperature=..., max_tokens=...)`` 的可调用对象，
            返回一个支持 ``invoke(messages)`` 的 LangChain 聊天模型。
    """

    def __init__(self, llm_factory: Callable[..., object]):
        self._llm_factory = llm_factory

    def generate(self, prompt: str, max_tokens: int = DEFAULT_MAX_TOKENS,
                 temperature: float = DEFAULT_TEMPERATURE, system_prompt: str = None) -> ProviderResponse:
        llm = self._llm_factory(temperature=temperature, max_tokens=max_tokens)

        messages = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        logger.info(f"正在调用模型生成内容 (temperature={temperature}, max_tokens={max_tokens})...")
        try:
            message = llm.invoke(messages)
        except Exception as e:
            logger.error(f"模型调用失败: {e}")
            raise map_provider_error(e) from e

        response = ProviderResponse(
            content=_message_text(message),
            tokens_used=_tokens_used(message),
            stop_reason=_stop_reason(message),
        )
        logger.info(f"模型生成完成，消耗 {response.tokens_used} tokens")
        return response
