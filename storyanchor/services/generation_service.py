"""
AI 生成服务 (Generation Service)
整合上下文构建、对抗偏差引擎、Prompt 组装与文本生成提供方，并写入生成记录。

核心流程：
1. 构建上下文（角色、伏笔、冲突）
2. 生成对抗偏差指令
3. 构建完整 Prompt
4. 调用模型
5. 保存生成记录 (仅在模型调用成功后写入)
"""
from __future__ import annotations
import json
import logging
from storyanchor.core.exceptions import NotFoundError
from storyanchor.core.schemas import (
    AntiBiasContextData, ContextBuildParams, ContinueWritingParams, GenerationContext,
    GenerationRecord, GenerationResult, NewChapterParams,
    GENERATION_NEW_CHAPTER, GENERATION_CONTINUE_WRITING,
)
from storyanchor.services import anti_bias
from storyanchor.services.anti_bias import AntiBiasEngine
from storyanchor.services.context_builder import ContextBuilder
from storyanchor.services.prompt_assembler import build_chapter_prompt, build_continuation_prompt
from storyanchor.prompts import get_prompt_text

logger = logging.getLogger(__name__)

DEFAULT_CHAPTER_BLINDSPOTS = [
    anti_bias.PERSONALITY_EROSION,
    anti_bias.CONFLICT_REDUCTION,
    anti_bias.CULTURAL_CONTEXT,
]

# 续写特别关注语气保持
CONTINUATION_BLINDSPOTS = [
    anti_bias.PERSONALITY_EROSION,
    anti_bias.MICRO_RHYTHM_LOSS,
    anti_bias.NEGATIVE_EMOTION_DAMPENING,
    anti_bias.CULTURAL_CONTEXT,
]

CHAPTER_TEMPERATURE = 0.7
CHAPTER_MAX_TOKENS = 8000
# 续写时降低温度以保持一致性
CONTINUATION_TEMPERATURE = 0.6
CONTINUATION_MAX_TOKENS = 6000


def _dump(value) -> str:
    return json.dumps(value, ensure_ascii=False)


class GenerationService:
    def __init__(self, store, provider, history, context_builder: ContextBuilder = None,
                 engine: AntiBiasEngine = None):
        self.store = store
        self.provider = provider
        self.history = history
        self.context_builder = context_builder or ContextBuilder(store)
        self.engine = engine or AntiBiasEngine(store)

    def generate_new_chapter(self, params: NewChapterParams) -> GenerationResult:
        """生成新章节"""
        logger.info(f"[Generation] 正在生成项目 {params.project_id} 的第 {params.chapter_number} 章...")

        # 1. 构建上下文
        context = self.context_builder.build(ContextBuildParams(
            project_id=params.project_id,
            include_characters=True,
            include_foreshadowing=True,
            include_conflicts=True,
            include_chapters=params.previous_chapters,
        ))

        # 2. 生成对抗偏差指令
        target_blindspots = params.target_blindspots
        if target_blindspots is None:
            target_blindspots = DEFAULT_CHAPTER_BLINDSPOTS
        instructions = self.engine.generate_instructions(
            params.project_id,
            target_blindspots,
            AntiBiasContextData(
                characters=context.characters,
                conflicts=context.active_conflicts,
                foreshadowing=context.active_foreshadowing,
                project=context.project,
            ),
        )

        # 3. 构建完整 Prompt
        prompt = build_chapter_prompt(
            context, params.outline, instructions,
            chapter_number=params.chapter_number, title=params.title,
        )
        context_injected = _dump({
            "characters": [c.name for c in context.characters],
            "foreshadowing": [f.title for f in context.active_foreshadowing],
            "conflicts": [c.title for c in context.active_conflicts],
            "chapters": [ch.id for ch in context.recent_chapters or []],
        })
        instructions_json = _dump(instructions)

        # 4. 调用模型
        response = self.provider.generate(
            prompt=prompt,
            max_tokens=CHAPTER_MAX_TOKENS,
            temperature=CHAPTER_TEMPERATURE,
            system_prompt=get_prompt_text("chapter_system_prompt"),
        )

        # 5. 保存生成记录
        self.history.insert(GenerationRecord(
            project_id=params.project_id,
            chapter_id=None,
            generation_type=GENERATION_NEW_CHAPTER,
            prompt=prompt,
            context_injected=context_injected,
            anti_bias_instructions=instructions_json,
            generated_content=response.content,
            tokens_used=response.tokens_used,
        ))

        logger.info(f"[Generation] 第 {params.chapter_number} 章生成成功")
        return GenerationResult(
            content=response.content,
            tokens_used=response.tokens_used,
            anti_bias_instructions=instructions,
        )

    def continue_writing(self, params: ContinueWritingParams) -> GenerationResult:
        """续写现有内容"""
        logger.info(f"[Generation] 正在续写章节 {params.chapter_id}...")

        chapter = self.store.find_chapter_by_id(params.chapter_id)
        if chapter is None or chapter.project_id != params.project_id:
            raise NotFoundError(f"项目 {params.project_id} 中不存在章节 {params.chapter_id}")

        context: GenerationContext = self.context_builder.build(ContextBuildParams(
            project_id=params.project_id,
            include_characters=True,
        ))

        instructions = self.engine.generate_instructions(
            params.project_id,
            CONTINUATION_BLINDSPOTS,
            AntiBiasContextData(characters=context.characters, project=context.project),
        )

        prompt = build_continuation_prompt(
            context, params.current_content, instructions, hint=params.continuation_hint,
        )
        context_injected = _dump({"characters": [c.name for c in context.characters]})
        instructions_json = _dump(instructions)

        response = self.provider.generate(
            prompt=prompt,
            max_tokens=CONTINUATION_MAX_TOKENS,
            temperature=CONTINUATION_TEMPERATURE,
            system_prompt=get_prompt_text("continuation_system_prompt"),
        )

        self.history.insert(GenerationRecord(
            project_id=params.project_id,
            chapter_id=chapter.id,
            generation_type=GENERATION_CONTINUE_WRITING,
            prompt=prompt,
            context_injected=context_injected,
            anti_bias_instructions=instructions_json,
            generated_content=response.content,
            tokens_used=response.tokens_used,
        ))

        logger.info(f"[Generation] 章节 {params.chapter_id} 续写成功")
        return GenerationResult(
            content=response.content,
            tokens_used=response.tokens_used,
            anti_bias_instructions=instructions,
        )
