"""
自定义异常类
用于在存储层、模型调用层与生成服务之间传递具有明确语义的错误信息。
"""


class NotFoundError(Exception):
    """项目或章节等记录无法按 ID 找到"""
    pass


class ValidationError(Exception):
    """创建实体时数据不完整或不合法"""
    pass


class ConfigurationError(Exception):
    """当应用配置不正确或缺失时发生错误"""
    pass


class LLMOperationError(Exception):
    """当与大语言模型交互时发生错误"""
    kind = "generic"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProviderAuthError(LLMOperationError):
    """API Key 无效或未授权"""
    kind = "auth"


class ProviderRateLimitError(LLMOperationError):
    """调用频率超限"""
    kind = "rate_limit"


class ProviderOverloadError(LLMOperationError):
    """服务端暂时过载"""
    kind = "overloaded"


class ProviderGenericError(LLMOperationError):
    """其他模型调用失败"""
    kind = "generic"
