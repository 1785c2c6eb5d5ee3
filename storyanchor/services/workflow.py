"""
工作流协调中心 (Workflow)
系统的 Facade 层：根据配置装配存储、模型与生成服务，并把调用方请求分发至具体的生成流程。
与任何 UI 框架解耦。
"""
from __future__ import annotations
import logging
from functools import partial
from storyanchor.config import load_environment
from storyanchor.config.loader import load_config, get_database_url
from storyanchor.core.exceptions import LLMOperationError, NotFoundError, ConfigurationError
from storyanchor.core.logger import setup_logging
from storyanchor.core.schemas import ContinueWritingParams, GenerationResult, NewChapterParams
from storyanchor.infra.llm.factory import get_llm
from storyanchor.infra.llm.provider import TextGenerationProvider
from storyanchor.infra.storage.sql_db import GenerationHistory, NarrativeStore, get_engine
from storyanchor.services.generation_service import GenerationService

logger = logging.getLogger(__name__)

DRAFTER_ALIAS = "drafter"


def build_generation_service(config: dict = None, engine=None, configure_logging: bool = True) -> GenerationService:
    """
    按配置装配生成服务，应用启动时调用一次。

    Args:
        config: 运行时配置，缺省时读取 config.yaml / user_config.yaml。
        engine: 已创建的数据库引擎，缺省时按 database.url 创建。
        configure_logging: 是否初始化根日志 (logs/app.log + 控制台)。
            已自行配置日志的宿主程序传 False。
    """
    load_environment()
    if configure_logging:
        setup_logging()
    config = config if config is not None else load_config()

    if engine is None:
        engine = get_engine(get_database_url(config))

    store = NarrativeStore(engine)
    history = GenerationHistory(engine)
    provider = TextGenerationProvider(partial(get_llm, DRAFTER_ALIAS, config=config))
    return GenerationService(store, provider, history)


def run_step(step_name: str, params, service: GenerationService) -> GenerationResult:
    """
    生成业务统一入口点。

    Args:
        step_name: "new_chapter" 或 "continue_writing"
        params: 对应的 NewChapterParams / ContinueWritingParams
        service: 已装配的 GenerationService
    """
    logger.info(f"路由请求: {step_name} (项目: {params.project_id})")

    try:
        if step_name == "new_chapter":
            if not isinstance(params, NewChapterParams):
                raise TypeError("new_chapter 需要 NewChapterParams 参数")
            return service.generate_new_chapter(params)
        elif step_name == "continue_writing":
            if not isinstance(params, ContinueWritingParams):
                raise TypeError("continue_writing 需要 ContinueWritingParams 参数")
            return service.continue_writing(params)
        else:
            raise ValueError(f"未知的步骤名称: {step_name}")

    except LLMOperationError as e:
        logger.error(f"执行 {step_name} 失败 [{e.kind}]: {e}")
        raise
    except (NotFoundError, ConfigurationError) as e:
        logger.error(f"执行 {step_name} 失败: {e}")
        raise
