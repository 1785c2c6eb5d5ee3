import json

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from storyanchor.core.exceptions import (
    NotFoundError, ProviderAuthError, ProviderGenericError, ProviderOverloadError, ProviderRateLimitError,
)
from storyanchor.core.schemas import ContinueWritingParams, NewChapterParams
from storyanchor.prompts import get_prompt_text
from storyanchor.services import anti_bias
from storyanchor.services.anti_bias import CULTURAL_PROTECTION_TEXTS


def _prompt_of(chat_model):
    [messages] = chat_model.calls
    return messages[-1].content


def test_new_chapter_records_exact_instructions(service, history, chat_model, project, alice):
    result = service.generate_new_chapter(NewChapterParams(
        project_id=project.id, outline="Alice 夜探沈府，发现旧案卷宗。", chapter_number=3, title="夜探",
    ))

    assert result.content == chat_model.content
    assert result.tokens_used == 2000
    # 没有活跃冲突时冲突指令不产生条目
    assert len(result.anti_bias_instructions) == 2

    [record] = history.list_for_project(project.id)
    assert record.generation_type == "new_chapter"
    assert record.chapter_id is None
    assert record.generated_content == result.content
    assert record.tokens_used == 2000
    assert json.loads(record.anti_bias_instructions) == result.anti_bias_instructions
    assert json.loads(record.context_injected)["characters"] == ["Alice"]
    assert record.prompt == _prompt_of(chat_model)


def test_new_chapter_call_parameters(service, llm_factory, chat_model, project, alice):
    service.generate_new_chapter(NewChapterParams(project_id=project.id, outline="初入江湖"))

    assert llm_factory.calls == [{"temperature": 0.7, "max_tokens": 8000}]
    system, human = chat_model.calls[0]
    assert isinstance(system, SystemMessage)
    assert system.content == get_prompt_text("chapter_system_prompt")
    assert isinstance(human, HumanMessage)


def test_new_chapter_prompt_sections(service, chat_model, project, alice):
    service.generate_new_chapter(NewChapterParams(
        project_id=project.id, outline="Alice 夜探沈府", chapter_number=3, title="夜探",
    ))
    prompt = _prompt_of(chat_model)

    assert prompt.startswith("# 第 3 章：夜探")
    assert "## 本章大纲\nAlice 夜探沈府" in prompt
    assert project.world_setting in prompt
    assert "### Alice（主角）" in prompt
    assert "## 🔑 对抗偏差指令（务必严格遵守）" in prompt
    assert CULTURAL_PROTECTION_TEXTS["chinese"] in prompt
    assert "中式文化语境，符合项目题材（武侠）" in prompt
    assert "请开始生成第 3 章的正文内容：" in prompt
    # 无伏笔、无冲突、无前文时对应区块整体省略
    assert "## 活跃伏笔" not in prompt
    assert "## 当前冲突" not in prompt
    assert "## 前文回顾" not in prompt


def test_new_chapter_includes_active_state(store, service, chat_model, project, alice):
    store.create_conflict(project.id, title="师门血仇", current_intensity=9, side_a="林家", side_b="沈家",
                          cant_reconcile_reasons=["灭门之恨"], maintenance_mechanism="旧案未结")
    store.create_foreshadowing(project.id, title="断剑", description="剑身刻着半个名字", planned_reveal_chapter=12)
    previous = store.create_chapter(project.id, 2, "雨夜", content="雨下了一整夜。")

    result = service.generate_new_chapter(NewChapterParams(
        project_id=project.id, outline="对峙", chapter_number=3, previous_chapters=[previous.id],
        target_blindspots=[anti_bias.CONFLICT_REDUCTION, anti_bias.FORESHADOWING_FORGOTTEN],
    ))
    prompt = _prompt_of(chat_model)

    assert "## 当前冲突（严格维持强度）" in prompt
    assert "林家 vs 沈家" in prompt
    assert "## 活跃伏笔（注意推进或回收）" in prompt
    assert "计划第 12 章回收" in prompt
    assert "## 前文回顾（保持衔接）" in prompt
    assert "雨下了一整夜。" in prompt
    assert len(result.anti_bias_instructions) == 2
    assert "【师门血仇】强度：9/10。" in result.anti_bias_instructions[0]


def test_explicit_empty_blindspots_are_respected(service, chat_model, project, alice):
    result = service.generate_new_chapter(NewChapterParams(
        project_id=project.id, outline="过场", target_blindspots=[],
    ))

    assert result.anti_bias_instructions == []
    prompt = _prompt_of(chat_model)
    assert "（无）" in prompt
    assert prompt.startswith("# 新章节")
    assert "请开始生成本章的正文内容：" in prompt


def test_new_chapter_missing_project_writes_nothing(service, history, chat_model):
    with pytest.raises(NotFoundError):
        service.generate_new_chapter(NewChapterParams(project_id=404, outline="无"))

    assert chat_model.calls == []
    assert history.list_for_project(404) == []


@pytest.mark.parametrize("status_code,error_type", [
    (429, ProviderRateLimitError),
    (401, ProviderAuthError),
    (529, ProviderOverloadError),
    (500, ProviderGenericError),
])
def test_provider_failure_writes_no_record(service, history, chat_model, status_error, project, alice,
                                           status_code, error_type):
    chat_model.error = status_error(status_code)

    with pytest.raises(error_type):
        service.generate_new_chapter(NewChapterParams(project_id=project.id, outline="夜探"))

    assert len(chat_model.calls) == 1
    assert history.list_for_project(project.id) == []


def test_continue_writing_missing_chapter(service, history, chat_model, project, alice):
    with pytest.raises(NotFoundError):
        service.continue_writing(ContinueWritingParams(
            project_id=project.id, chapter_id=999, current_content="雨还在下。",
        ))

    assert chat_model.calls == []
    assert history.list_for_project(project.id) == []


def test_continue_writing_records_chapter(store, service, history, llm_factory, chat_model, project, alice):
    chapter = store.create_chapter(project.id, 1, "雨夜", content="雨下了一整夜。")

    result = service.continue_writing(ContinueWritingParams(
        project_id=project.id, chapter_id=chapter.id, current_content="雨下了一整夜。",
        continuation_hint="让 Alice 独自出门",
    ))

    assert llm_factory.calls == [{"temperature": 0.6, "max_tokens": 6000}]
    system, human = chat_model.calls[0]
    assert system.content == get_prompt_text("continuation_system_prompt")
    assert "## 已有内容\n雨下了一整夜。" in human.content
    assert "## 续写方向提示\n让 Alice 独自出门" in human.content
    assert "### Alice\n" in human.content
    assert "请开始续写：" in human.content

    assert len(result.anti_bias_instructions) == 4
    assert result.anti_bias_instructions[2] == anti_bias.NEGATIVE_EMOTION_INSTRUCTION

    [record] = history.list_for_project(project.id)
    assert record.generation_type == "continue_writing"
    assert record.chapter_id == chapter.id
    assert json.loads(record.anti_bias_instructions) == result.anti_bias_instructions
    assert json.loads(record.context_injected) == {"characters": ["Alice"]}


def test_continue_writing_without_hint_omits_section(store, service, chat_model, project, alice):
    chapter = store.create_chapter(project.id, 1, "雨夜")

    service.continue_writing(ContinueWritingParams(
        project_id=project.id, chapter_id=chapter.id, current_content="雨还在下。",
    ))

    assert "续写方向提示" not in _prompt_of(chat_model)


def test_continue_writing_rate_limited(store, service, history, chat_model, status_error, project, alice):
    chapter = store.create_chapter(project.id, 1, "雨夜")
    chat_model.error = status_error(429)

    with pytest.raises(ProviderRateLimitError) as exc_info:
        service.continue_writing(ContinueWritingParams(
            project_id=project.id, chapter_id=chapter.id, current_content="雨还在下。",
        ))

    assert exc_info.value.kind == "rate_limit"
    assert history.list_for_project(project.id) == []


def test_continue_writing_rejects_chapter_of_another_project(store, service, history, chat_model, project, alice):
    other_project = store.create_project(name="另一部")
    foreign_chapter = store.create_chapter(other_project.id, 1, "他人之章")

    with pytest.raises(NotFoundError):
        service.continue_writing(ContinueWritingParams(
            project_id=project.id, chapter_id=foreign_chapter.id, current_content="雨还在下。",
        ))

    assert chat_model.calls == []
    assert history.list_for_project(project.id) == []
    assert history.list_for_project(other_project.id) == []
