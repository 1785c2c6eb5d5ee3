"""
Prompt 组装 (Prompt Assembler)
把上下文快照、对抗指令与作者输入渲染为完整的生成 Prompt。
空的伏笔、冲突、前文区块整体省略。
"""
from typing import List, Optional
from storyanchor.core.schemas import Character, Chapter, Conflict, Foreshadowing, GenerationContext, SpeechPattern
from storyanchor.prompts import get_prompt_template

ROLE_TYPE_LABELS = {
    "protagonist": "主角",
    "major": "主要角色",
    "supporting": "配角",
    "minor": "次要角色",
    "antagonist": "反派",
}

RECAP_EXCERPT_CHARS = 500


def role_type_label(role_type: str) -> str:
    return ROLE_TYPE_LABELS.get(role_type, role_type)


def describe_speech_pattern(pattern: Optional[SpeechPattern]) -> str:
    """描述语言风格"""
    if pattern is None:
        return ""
    parts = []
    if pattern.rhythm:
        parts.append(f"节奏：{pattern.rhythm}")
    if pattern.sentence_structure:
        parts.append(f"句式：{pattern.sentence_structure}")
    if pattern.tone_words:
        parts.append(f"语气词：{'、'.join(pattern.tone_words)}")
    return "；".join(parts)


def _character_block(char: Character, detailed: bool) -> str:
    heading = f"### {char.name}（{role_type_label(char.role_type)}）" if detailed else f"### {char.name}"
    bold = "**" if detailed else ""
    lines = [
        heading,
        f"- {bold}核心性格{bold}：{'、'.join(char.personality_traits)}",
        f"- {bold}深层动机{bold}：{char.deep_motivation}",
        f"- {bold}绝不会做{bold}：{'；'.join(char.things_never_do)}",
    ]
    speech = describe_speech_pattern(char.speech_pattern)
    if speech:
        lines.append(f"- {bold}说话风格{bold}：{speech}")
    if detailed and char.language_style:
        lines.append(f"- **语言特点**：{char.language_style}")
    return "\n".join(lines)


def render_character_blocks(characters: List[Character], detailed: bool = True) -> str:
    if not characters:
        return "（暂无角色设定）"
    return "\n\n".join(_character_block(c, detailed) for c in characters)


def render_instructions(instructions: List[str]) -> str:
    if not instructions:
        return "（无）"
    return "\n\n".join(f"{i}. {ins}" for i, ins in enumerate(instructions, start=1))


def _recent_chapters_section(chapters: Optional[List[Chapter]]) -> str:
    if not chapters:
        return ""
    blocks = []
    for ch in chapters:
        body = (ch.content or ch.outline or "").strip()
        if len(body) > RECAP_EXCERPT_CHARS:
            body = "……" + body[-RECAP_EXCERPT_CHARS:]
        blocks.append(f"### 第 {ch.chapter_number} 章：{ch.title}\n{body}".rstrip())
    return "\n## 前文回顾（保持衔接）\n" + "\n\n".join(blocks) + "\n"


def _foreshadowing_section(items: List[Foreshadowing]) -> str:
    if not items:
        return ""
    lines = []
    for f in items:
        reveal = f"计划第 {f.planned_reveal_chapter} 章回收" if f.planned_reveal_chapter is not None else "回收章节待定"
        lines.append(f"- **{f.title}**（{reveal}）\n  {f.description or ''}".rstrip())
    return "\n## 活跃伏笔（注意推进或回收）\n" + "\n".join(lines) + "\n"


def _conflict_section(conflicts: List[Conflict]) -> str:
    if not conflicts:
        return ""
    blocks = []
    for c in conflicts:
        blocks.append(
            f"- **{c.title}**（强度：{c.current_intensity}/10）\n"
            f"  - 对立：{c.side_a or '未指定'} vs {c.side_b or '未指定'}\n"
            f"  - 维持机制：{c.maintenance_mechanism}\n"
            f"  - 无法和解原因：{'；'.join(c.cant_reconcile_reasons)}"
        )
    return "\n## 当前冲突（严格维持强度）\n" + "\n".join(blocks) + "\n"


def build_chapter_prompt(context: GenerationContext, outline: str, instructions: List[str],
                         chapter_number: Optional[int] = None, title: Optional[str] = None) -> str:
    """构建章节生成 Prompt"""
    chapter_title = title or "新章节"
    if chapter_number:
        heading = f"第 {chapter_number} 章：{chapter_title}"
        chapter_ref = f"第 {chapter_number} 章"
    else:
        heading = chapter_title
        chapter_ref = "本章"

    return get_prompt_template("new_chapter").format(
        heading=heading,
        outline=outline,
        world_setting=context.world_setting or "（无特别设定）",
        character_blocks=render_character_blocks(context.characters, detailed=True),
        recent_chapters_section=_recent_chapters_section(context.recent_chapters),
        foreshadowing_section=_foreshadowing_section(context.active_foreshadowing),
        conflict_section=_conflict_section(context.active_conflicts),
        instructions=render_instructions(instructions),
        cultural_label=context.cultural_context_label,
        genre=context.project.genre or "通用",
        chapter_ref=chapter_ref,
    )


def build_continuation_prompt(context: GenerationContext, current_content: str, instructions: List[str],
                              hint: Optional[str] = None) -> str:
    """构建续写 Prompt"""
    hint_section = f"\n## 续写方向提示\n{hint}\n" if hint else ""
    return get_prompt_template("continue_writing").format(
        current_content=current_content,
        hint_section=hint_section,
        character_blocks=render_character_blocks(context.characters, detailed=False),
        instructions=render_instructions(instructions),
    )
