"""
对抗偏差引擎 (Anti-Bias Engine)
根据项目数据和目标盲区，生成注入 Prompt 的对抗指令，抵消 AI 的默认偏差：
- 人格侵蚀（角色变通用）
- 冲突降级（仇人变朋友）
- 文化美国化（西化）
- 负面情绪钝化（理性化）
- 伏笔遗忘

每个盲区对应注册表中的一条无状态策略，新增盲区只需注册一条策略。
相同输入必然得到逐字节相同的输出，生成记录依赖这一点做追溯。
"""
import logging
from typing import Callable, Dict, List, Optional
from storyanchor.core.schemas import AntiBiasContextData, Character, Conflict, Foreshadowing, Project

logger = logging.getLogger(__name__)

# 长篇小说 5 大盲区
PERSONALITY_EROSION = "personality_erosion"
FORESHADOWING_FORGOTTEN = "foreshadowing_forgotten"
CONFLICT_REDUCTION = "conflict_reduction"
BACKGROUND_CHARACTER_QUANTUM = "background_character_quantum"
POWER_INFLATION = "power_inflation"
# 续写 5 大盲区
MICRO_RHYTHM_LOSS = "micro_rhythm_loss"
NEGATIVE_EMOTION_DAMPENING = "negative_emotion_dampening"
TIMELINE_DISTORTION = "timeline_distortion"
MOTIVATION_SUBSTITUTION = "motivation_substitution"
CULTURAL_CONTEXT = "cultural_context"

CULTURAL_CONTEXT_LABELS = {
    "chinese": "中式",
    "japanese": "日式",
    "western": "西式",
    "classical": "古典",
}

CULTURAL_PROTECTION_TEXTS = {
    "chinese": (
        '保持中式文化语境：\n'
        '- 人物关系：含蓄、注重面子、重视人情世故\n'
        '- 表达方式：委婉、隐晦，避免美式直白\n'
        '- 价值观：集体、等级、关系网络\n'
        '- 禁止出现：契约精神、骑士精神、个人主义、直接对抗权威等西式概念'
    ),
    "japanese": (
        '保持日式文化语境：\n'
        '- 上下级关系严格，集体主义\n'
        '- 表达极度含蓄，注重氛围（空気を読む）\n'
        '- 避免直接冲突，重视和谐\n'
        '- 禁止美式直白和西式个人主义'
    ),
    "classical": (
        '保持古典文学语境：\n'
        '- 语言：文言、半文言，避免现代白话\n'
        '- 概念：传统伦理、等级制度\n'
        '- 禁止：现代化概念、西式思维、白话俚语'
    ),
    "western": (
        '保持西式文化语境：\n'
        '- 表达直白、强调个人\n'
        '- 契约精神、法律意识\n'
        '- 但避免刻板印象和过度理想化'
    ),
}

CHARACTER_FALLBACK_INSTRUCTION = '严格遵守角色设定，不要让角色变得"更理性"或"更成熟"。'

NEGATIVE_EMOTION_INSTRUCTION = (
    '🔑 情绪真实性要求：\n'
    '- 保持负面情绪的原始强度：愤怒、绝望、憎恨、恐惧、崩溃\n'
    '- 不要自动软化、理性化、成熟化这些情绪\n'
    '- 角色可以失控、极端、非理性——这是真实的人性\n'
    '- 避免"冷静下来思考"、"理性分析"、"成长后理解"等模式化处理'
)

STATIC_INSTRUCTIONS = {
    BACKGROUND_CHARACTER_QUANTUM: '背景角色不是"量子态存在"，他们有连续的日常生活。提及时需符合时间线。',
    POWER_INFLATION: '严格遵守已建立的战力体系。新角色/新招式的威力不能超过当前章节设定的上限。',
    MICRO_RHYTHM_LOSS: '保持原作语言风格：句式长短、停顿节奏、口头禅、说话习惯。不要让所有角色都说标准书面语。',
    TIMELINE_DISTORTION: '严格遵守时间线。已发生事件的顺序、间隔、因果关系不可改变。',
    MOTIVATION_SUBSTITUTION: '角色行为必须基于其深层动机，不要用"理性选择"替换角色真实的情感驱动。',
    NEGATIVE_EMOTION_DAMPENING: NEGATIVE_EMOTION_INSTRUCTION,
}


def cultural_context_label(cultural_context: str) -> str:
    """文化语境的中文标签，未知取值原样返回"""
    return CULTURAL_CONTEXT_LABELS.get(cultural_context, cultural_context)


class InstructionSource:
    """
    策略的数据来源。
    优先使用调用方预取的数据，缺失时才向存储查询，同一次生成内每类数据最多查询一次。
    """

    def __init__(self, project_id: int, store, context_data: Optional[AntiBiasContextData] = None):
        self.project_id = project_id
        self._store = store
        self._data = context_data or AntiBiasContextData()
        self._fetched = {}

    def _resolve(self, name: str, supplied, query: str):
        if supplied is not None:
            return supplied
        if name not in self._fetched:
            logger.debug(f"上下文未提供 {name}，从数据库读取 (项目 {self.project_id})")
            self._fetched[name] = getattr(self._store, query)(self.project_id)
        return self._fetched[name]

    def characters(self) -> List[Character]:
        return self._resolve("characters", self._data.characters, "find_characters_by_project")

    def conflicts(self) -> List[Conflict]:
        return self._resolve("conflicts", self._data.conflicts, "find_active_conflicts")

    def foreshadowing(self) -> List[Foreshadowing]:
        return self._resolve("foreshadowing", self._data.foreshadowing, "find_active_foreshadowing")

    def project(self) -> Project:
        return self._resolve("project", self._data.project, "get_project")


BlindspotStrategy = Callable[[InstructionSource], Optional[str]]

BLINDSPOT_STRATEGIES: Dict[str, BlindspotStrategy] = {}


def register_blindspot(name: str):
    """注册一个盲区策略"""
    def decorator(func: BlindspotStrategy) -> BlindspotStrategy:
        BLINDSPOT_STRATEGIES[name] = func
        return func
    return decorator


def _register_static(name: str, text: str):
    BLINDSPOT_STRATEGIES[name] = lambda source: text


for _name, _text in STATIC_INSTRUCTIONS.items():
    _register_static(_name, _text)


def _character_line(char: Character) -> str:
    parts = []
    if char.personality_traits:
        parts.append(f"核心特质：{'、'.join(char.personality_traits)}。")
    if char.things_never_do:
        parts.append(f"绝不会：{'；'.join(char.things_never_do)}。")
    if char.deep_motivation:
        parts.append(f"深层动机：{char.deep_motivation}。")
    if not parts:
        parts.append(CHARACTER_FALLBACK_INSTRUCTION)
    return f"【{char.name}】" + "".join(parts)


@register_blindspot(PERSONALITY_EROSION)
def character_drift_instruction(source: InstructionSource) -> str:
    """防人格侵蚀：基于角色的“绝不会做”字段"""
    characters = source.characters()
    if not characters:
        return CHARACTER_FALLBACK_INSTRUCTION

    lines = "\n".join(_character_line(c) for c in characters)
    return (
        f"🔑 角色一致性要求（严格遵守）：\n"
        f"{lines}\n"
        f"不要让任何角色\"成长\"成通用好人、理性人、成熟人。保持他们的独特性和缺陷。"
    )


@register_blindspot(CONFLICT_REDUCTION)
def conflict_softening_instruction(source: InstructionSource) -> Optional[str]:
    """防冲突降级：基于冲突的“维持机制”和“无法和解原因”"""
    conflicts = [c for c in source.conflicts() if c.status == "active"]
    if not conflicts:
        return None

    lines = "\n".join(
        f"【{c.title}】强度：{c.current_intensity}/10。"
        f"无法和解：{'；'.join(c.cant_reconcile_reasons)}。"
        f"维持机制：{c.maintenance_mechanism}。"
        for c in conflicts
    )
    return (
        f"🔑 冲突维持要求（严格遵守）：\n"
        f"{lines}\n"
        f"不要让对立双方\"相互理解\"、\"握手言和\"、\"发现对方也不容易\"。冲突必须维持设定的强度。"
    )


@register_blindspot(CULTURAL_CONTEXT)
def cultural_protection_instruction(source: InstructionSource) -> str:
    """文化语境保护：只取决于项目的 cultural_context"""
    cultural_context = source.project().cultural_context
    text = CULTURAL_PROTECTION_TEXTS.get(cultural_context)
    if text is None:
        logger.warning(f"未知的文化语境 '{cultural_context}'，使用通用保护指令")
        text = f"保持{cultural_context_label(cultural_context)}文化语境，人物关系、表达方式与价值观不得偏离既定设定。"
    return f"🔑 {text}"


@register_blindspot(FORESHADOWING_FORGOTTEN)
def foreshadowing_instruction(source: InstructionSource) -> Optional[str]:
    """伏笔记忆：列出所有未回收伏笔"""
    items = source.foreshadowing()
    if not items:
        return None

    def _line(f: Foreshadowing) -> str:
        if f.planned_reveal_chapter is not None:
            reveal = f"计划第{f.planned_reveal_chapter}章回收"
        else:
            reveal = "回收章节待定"
        return f"- {f.title}（{reveal}）：{f.description or ''}"

    lines = "\n".join(_line(f) for f in items)
    return (
        f"🔑 伏笔追踪（不要遗忘）：\n"
        f"{lines}\n"
        f"如果本章涉及这些伏笔，要推进或回收。如果不涉及，至少保持前后一致，不要矛盾。"
    )


class AntiBiasEngine:
    """
    对抗偏差指令生成器。
    可以独立使用 (自行查询数据)，也可以接收 ContextBuilder 的快照避免重复查询。
    """

    def __init__(self, store, strategies: Dict[str, BlindspotStrategy] = None):
        self.store = store
        self.strategies = strategies if strategies is not None else BLINDSPOT_STRATEGIES

    def generate_instructions(self, project_id: int, target_blindspots: List[str],
                              context_data: Optional[AntiBiasContextData] = None) -> List[str]:
        """
        生成对抗偏差指令。

        输出顺序与 target_blindspots 一致；未知盲区与不适用的盲区不产生条目，
        因此结果长度不超过输入长度。
        """
        source = InstructionSource(project_id, self.store, context_data)
        instructions = []

        for blindspot in target_blindspots:
            strategy = self.strategies.get(blindspot)
            if strategy is None:
                logger.warning(f"忽略未知的盲区类型: {blindspot}")
                continue

            instruction = strategy(source)
            if instruction:
                instructions.append(instruction)

        logger.info(f"为项目 {project_id} 生成了 {len(instructions)} 条对抗指令 (请求 {len(target_blindspots)} 类)")
        return instructions
