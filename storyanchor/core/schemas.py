"""
业务对象定义 (Schemas)
定义存储层、上下文构建、对抗偏差引擎与生成服务之间传递的强类型数据结构。
所有实体都是只读快照：每次生成请求重新读取，不做缓存，也不回写。
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, List

CULTURAL_CONTEXTS = ("chinese", "japanese", "western", "classical")
ROLE_TYPES = ("protagonist", "major", "supporting", "minor", "antagonist")
CONFLICT_STATUSES = ("active", "escalated", "resolved")
FORESHADOWING_STATUSES = ("buried", "progressing", "revealed")
ACTIVE_FORESHADOWING_STATUSES = ("buried", "progressing")

# 伏笔提醒类型
ALERT_APPROACHING = "approaching"
ALERT_OVERDUE = "overdue"
ALERT_LONG_INACTIVE = "long_inactive"
# 距计划回收章节不超过该章数时提醒
ALERT_APPROACHING_WINDOW = 2
# 埋入后超过该章数仍未推进时提醒
ALERT_INACTIVE_CHAPTERS = 10

GENERATION_NEW_CHAPTER = "new_chapter"
GENERATION_CONTINUE_WRITING = "continue_writing"


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    genre: Optional[str] = None
    world_setting: Optional[str] = None
    cultural_context: str = "chinese"
    description: Optional[str] = None
    target_words: Optional[int] = None


@dataclass(frozen=True)
class SpeechPattern:
    """角色的说话模式 (对抗语气丢失)"""
    rhythm: Optional[str] = None
    sentence_structure: Optional[str] = None
    tone_words: List[str] = field(default_factory=list)
    typical_patterns: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Character:
    id: int
    project_id: int
    name: str
    role_type: str
    personality_traits: List[str] = field(default_factory=list)
    deep_motivation: str = ""
    things_never_do: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)
    background: Optional[str] = None
    core_values: Optional[str] = None
    surface_behavior: Optional[str] = None
    psychological_trauma: Optional[str] = None
    speech_pattern: Optional[SpeechPattern] = None
    catchphrases: List[str] = field(default_factory=list)
    language_style: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    id: int
    project_id: int
    title: str
    side_a: Optional[str] = None
    side_b: Optional[str] = None
    current_intensity: int = 5
    maintenance_mechanism: str = ""
    cant_reconcile_reasons: List[str] = field(default_factory=list)
    status: str = "active"
    conflict_type: Optional[str] = None


@dataclass(frozen=True)
class Foreshadowing:
    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    planned_reveal_chapter: Optional[int] = None
    status: str = "buried"
    priority: int = 1
    buried_chapter: Optional[int] = None


@dataclass(frozen=True)
class ForeshadowingAlert:
    """伏笔提醒：即将到期 / 已过期 / 长期未推进"""
    foreshadowing: Foreshadowing
    alert_type: str
    message: str
    current_chapter: int


@dataclass(frozen=True)
class Chapter:
    id: int
    project_id: int
    chapter_number: int
    title: str
    content: Optional[str] = None
    outline: Optional[str] = None
    word_count: int = 0
    status: str = "draft"
    volume_number: Optional[int] = None


@dataclass(frozen=True)
class ContextBuildParams:
    """上下文构建参数"""
    project_id: int
    include_characters: bool = False
    specific_characters: Optional[List[int]] = None
    include_foreshadowing: bool = False
    include_conflicts: bool = False
    include_chapters: Optional[List[int]] = None


@dataclass(frozen=True)
class GenerationContext:
    """
    单次生成请求的叙事状态快照。
    由 ContextBuilder 构建，生成服务消费后即丢弃。
    """
    project: Project
    cultural_context_label: str
    characters: List[Character] = field(default_factory=list)
    active_foreshadowing: List[Foreshadowing] = field(default_factory=list)
    active_conflicts: List[Conflict] = field(default_factory=list)
    recent_chapters: Optional[List[Chapter]] = None

    @property
    def world_setting(self) -> Optional[str]:
        return self.project.world_setting


@dataclass(frozen=True)
class AntiBiasContextData:
    """
    对抗偏差引擎的预取数据。
    字段为 None 表示调用方未提供，引擎会自行查询；空列表表示确实没有数据。
    """
    characters: Optional[List[Character]] = None
    conflicts: Optional[List[Conflict]] = None
    foreshadowing: Optional[List[Foreshadowing]] = None
    project: Optional[Project] = None


@dataclass(frozen=True)
class NewChapterParams:
    project_id: int
    outline: str
    chapter_number: Optional[int] = None
    title: Optional[str] = None
    previous_chapters: Optional[List[int]] = None
    target_blindspots: Optional[List[str]] = None


@dataclass(frozen=True)
class ContinueWritingParams:
    project_id: int
    chapter_id: int
    current_content: str
    continuation_hint: Optional[str] = None


@dataclass(frozen=True)
class ProviderResponse:
    """文本生成提供方的返回结果"""
    content: str
    tokens_used: int
    stop_reason: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    """生成业务执行结果"""
    content: str
    tokens_used: int
    anti_bias_instructions: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class GenerationRecord:
    """
    AI 生成历史记录 (审计用)
    context_injected 与 anti_bias_instructions 均为 JSON 文本。
    """
    project_id: int
    chapter_id: Optional[int]
    generation_type: str
    prompt: str
    context_injected: str
    anti_bias_instructions: str
    generated_content: str
    tokens_used: int
    user_rating: Optional[int] = None
    accepted: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None
