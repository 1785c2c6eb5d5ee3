"""
SQLite 数据库管理器 (SQL Store)
提供叙事数据的只读查询 (NarrativeStore) 与生成历史的写入 (GenerationHistory)。
JSON 编码的列表字段在这里解析为 Python 列表，上层只接触强类型实体。
"""
import os
import json
import logging
from dataclasses import asdict
from functools import lru_cache
from typing import Iterable, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from storyanchor.core.models import (
    Base, ProjectRow, ChapterRow, CharacterRow, ConflictRow, ForeshadowingRow, GenerationRow
)
from storyanchor.core.schemas import (
    Project, Chapter, Character, Conflict, Foreshadowing, ForeshadowingAlert, SpeechPattern, GenerationRecord,
    CULTURAL_CONTEXTS, ROLE_TYPES, CONFLICT_STATUSES, FORESHADOWING_STATUSES,
    ACTIVE_FORESHADOWING_STATUSES, ALERT_APPROACHING, ALERT_OVERDUE, ALERT_LONG_INACTIVE,
    ALERT_APPROACHING_WINDOW, ALERT_INACTIVE_CHAPTERS,
)
from storyanchor.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def create_db_engine(db_url: str) -> Engine:
    """
    创建数据库引擎并自动建表。
    内存库使用 StaticPool，保证所有会话共享同一个连接。
    """
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            db_url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    elif db_url.startswith("sqlite:///"):
        db_dir = os.path.dirname(db_url[len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(db_url)

    Base.metadata.create_all(engine)
    return engine


@lru_cache(maxsize=5)
def get_engine(db_url: str) -> Engine:
    """
    获取指定数据库的引擎 (带缓存)。
    """
    return create_db_engine(db_url)


# --- 行 -> 实体 ---

def _load_json(text, default):
    if not text:
        return default
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"无法解析 JSON 字段，已按纯文本处理: {text!r}")
        return default


def _load_json_list(text) -> List[str]:
    value = _load_json(text, None)
    if value is None:
        return [text] if text else []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]


def _dump_json(value) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _to_project(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        genre=row.genre,
        world_setting=row.world_setting,
        cultural_context=row.cultural_context or "chinese",
        description=row.description,
        target_words=row.target_words,
    )


def _to_speech_pattern(text) -> Optional[SpeechPattern]:
    data = _load_json(text, None)
    if not isinstance(data, dict):
        return None
    return SpeechPattern(
        rhythm=data.get("rhythm"),
        sentence_structure=data.get("sentence_structure"),
        tone_words=list(data.get("tone_words") or []),
        typical_patterns=list(data.get("typical_patterns") or []),
    )


def _to_character(row: CharacterRow) -> Character:
    return Character(
        id=row.id,
        project_id=row.project_id,
        name=row.name,
        role_type=row.role_type,
        personality_traits=_load_json_list(row.personality_traits),
        deep_motivation=row.deep_motivation or "",
        things_never_do=_load_json_list(row.things_never_do),
        aliases=_load_json_list(row.aliases),
        background=row.background,
        core_values=row.core_values,
        surface_behavior=row.surface_behavior,
        psychological_trauma=row.psychological_trauma,
        speech_pattern=_to_speech_pattern(row.speech_pattern),
        catchphrases=_load_json_list(row.catchphrases),
        language_style=row.language_style,
    )


def _to_conflict(row: ConflictRow) -> Conflict:
    return Conflict(
        id=row.id,
        project_id=row.project_id,
        title=row.title,
        side_a=row.side_a,
        side_b=row.side_b,
        current_intensity=row.current_intensity if row.current_intensity is not None else 5,
        maintenance_mechanism=row.maintenance_mechanism or "",
        cant_reconcile_reasons=_load_json_list(row.cant_reconcile_reasons),
        status=row.status,
        conflict_type=row.conflict_type,
    )


def _to_foreshadowing(row: ForeshadowingRow) -> Foreshadowing:
    return Foreshadowing(
        id=row.id,
        project_id=row.project_id,
        title=row.title,
        description=row.description,
        planned_reveal_chapter=row.planned_reveal_chapter,
        buried_chapter=row.buried_chapter,
        status=row.status,
        priority=row.priority if row.priority is not None else 1,
    )


def _to_chapter(row: ChapterRow) -> Chapter:
    return Chapter(
        id=row.id,
        project_id=row.project_id,
        chapter_number=row.chapter_number,
        title=row.title,
        content=row.content,
        outline=row.outline,
        word_count=row.word_count or 0,
        status=row.status,
        volume_number=row.volume_number,
    )


def _to_record(row: GenerationRow) -> GenerationRecord:
    return GenerationRecord(
        id=row.id,
        project_id=row.project_id,
        chapter_id=row.chapter_id,
        generation_type=row.generation_type,
        prompt=row.prompt,
        context_injected=row.context_injected,
        anti_bias_instructions=row.anti_bias_instructions,
        generated_content=row.generated_content,
        tokens_used=row.tokens_used or 0,
        user_rating=row.user_rating,
        accepted=bool(row.accepted),
        created_at=row.created_at,
    )


def _require(value, message: str):
    if isinstance(value, str):
        value = value.strip()
    if not value:
        raise ValidationError(message)


class NarrativeStore:
    """
    叙事数据存储。
    构造时注入数据库引擎，每次操作使用独立会话。
    """

    def __init__(self, engine: Engine):
        self._session_factory = sessionmaker(bind=engine)

    def get_session(self) -> Session:
        """获取一个新的数据库会话"""
        return self._session_factory()

    # --- 查询 ---

    def find_project(self, project_id: int) -> Optional[Project]:
        session = self.get_session()
        try:
            row = session.get(ProjectRow, project_id)
            return _to_project(row) if row else None
        finally:
            session.close()

    def get_project(self, project_id: int) -> Project:
        """读取项目，不存在时抛出 NotFoundError"""
        project = self.find_project(project_id)
        if project is None:
            raise NotFoundError(f"项目 {project_id} 不存在")
        return project

    def find_characters_by_project(self, project_id: int) -> List[Character]:
        """按 (角色类型, 姓名) 排序返回项目全部角色"""
        session = self.get_session()
        try:
            rows = (
                session.query(CharacterRow)
                .filter_by(project_id=project_id)
                .order_by(CharacterRow.role_type, CharacterRow.name, CharacterRow.id)
                .all()
            )
            return [_to_character(r) for r in rows]
        finally:
            session.close()

    def find_characters_by_ids(self, character_ids: Iterable[int], project_id: Optional[int] = None) -> List[Character]:
        """按 ID 列表读取角色；不存在的 ID 直接忽略"""
        ids = list(character_ids)
        if not ids: return []
        session = self.get_session()
        try:
            query = session.query(CharacterRow).filter(CharacterRow.id.in_(ids))
            if project_id is not None:
                query = query.filter(CharacterRow.project_id == project_id)
            return [_to_character(r) for r in query.order_by(CharacterRow.id).all()]
        finally:
            session.close()

    def find_active_conflicts(self, project_id: int) -> List[Conflict]:
        """活跃冲突，按强度降序"""
        session = self.get_session()
        try:
            rows = (
                session.query(ConflictRow)
                .filter_by(project_id=project_id, status="active")
                .order_by(ConflictRow.current_intensity.desc(), ConflictRow.id)
                .all()
            )
            return [_to_conflict(r) for r in rows]
        finally:
            session.close()

    def find_active_foreshadowing(self, project_id: int) -> List[Foreshadowing]:
        """未回收的伏笔 (buried / progressing)，按优先级降序、创建先后排序"""
        session = self.get_session()
        try:
            rows = (
                session.query(ForeshadowingRow)
                .filter(ForeshadowingRow.project_id == project_id)
                .filter(ForeshadowingRow.status.in_(ACTIVE_FORESHADOWING_STATUSES))
                .order_by(ForeshadowingRow.priority.desc(), ForeshadowingRow.created_at, ForeshadowingRow.id)
                .all()
            )
            return [_to_foreshadowing(r) for r in rows]
        finally:
            session.close()

    def find_foreshadowing_alerts(self, project_id: int, current_chapter: int) -> List[ForeshadowingAlert]:
        """
        写到第 current_chapter 章时需要作者留意的伏笔：
        - approaching：计划回收章节在之后 2 章以内
        - overdue：计划回收章节已经过去
        - long_inactive：仍处于埋下状态，且埋入后已超过 10 章
        一条伏笔可能同时触发多种提醒。
        """
        alerts = []
        for f in self.find_active_foreshadowing(project_id):
            planned = f.planned_reveal_chapter
            if planned is not None and 0 < planned - current_chapter <= ALERT_APPROACHING_WINDOW:
                alerts.append(ForeshadowingAlert(
                    foreshadowing=f,
                    alert_type=ALERT_APPROACHING,
                    message=f"伏笔\"{f.title}\"计划在第 {planned} 章回收（还有 {planned - current_chapter} 章）",
                    current_chapter=current_chapter,
                ))
            if planned is not None and planned < current_chapter:
                alerts.append(ForeshadowingAlert(
                    foreshadowing=f,
                    alert_type=ALERT_OVERDUE,
                    message=f"伏笔\"{f.title}\"原计划第 {planned} 章回收，但已过期",
                    current_chapter=current_chapter,
                ))
            buried = f.buried_chapter
            if f.status == "buried" and buried is not None and current_chapter - buried > ALERT_INACTIVE_CHAPTERS:
                alerts.append(ForeshadowingAlert(
                    foreshadowing=f,
                    alert_type=ALERT_LONG_INACTIVE,
                    message=f"伏笔\"{f.title}\"已埋入 {current_chapter - buried} 章，长期未推进",
                    current_chapter=current_chapter,
                ))

        if alerts:
            logger.info(f"项目 {project_id} 第 {current_chapter} 章有 {len(alerts)} 条伏笔提醒")
        return alerts

    def find_chapters_by_ids(self, chapter_ids: Iterable[int], project_id: Optional[int] = None) -> List[Chapter]:
        """按 ID 列表读取章节，按章节号升序"""
        ids = list(chapter_ids)
        if not ids: return []
        session = self.get_session()
        try:
            query = session.query(ChapterRow).filter(ChapterRow.id.in_(ids))
            if project_id is not None:
                query = query.filter(ChapterRow.project_id == project_id)
            rows = query.order_by(ChapterRow.chapter_number, ChapterRow.id).all()
            return [_to_chapter(r) for r in rows]
        finally:
            session.close()

    def find_chapter_by_id(self, chapter_id: int) -> Optional[Chapter]:
        session = self.get_session()
        try:
            row = session.get(ChapterRow, chapter_id)
            return _to_chapter(row) if row else None
        finally:
            session.close()

    # --- 创建 (供录入与测试使用) ---

    def _insert(self, row, converter):
        session = self.get_session()
        try:
            session.add(row)
            session.commit()
            session.refresh(row)
            return converter(row)
        except Exception as e:
            session.rollback()
            logger.error(f"写入 {row.__tablename__} 失败: {e}")
            raise
        finally:
            session.close()

    def create_project(self, name: str, genre: str = None, world_setting: str = None,
                       cultural_context: str = "chinese", description: str = None,
                       target_words: int = None) -> Project:
        _require(name, "项目名称不能为空")
        cultural_context = cultural_context or "chinese"
        if cultural_context not in CULTURAL_CONTEXTS:
            raise ValidationError(f"未知的文化语境: {cultural_context}")
        row = ProjectRow(
            name=name, genre=genre, world_setting=world_setting,
            cultural_context=cultural_context, description=description, target_words=target_words,
        )
        return self._insert(row, _to_project)

    def create_character(self, project_id: int, name: str, role_type: str,
                         personality_traits: List[str], things_never_do: List[str],
                         deep_motivation: str, speech_pattern: SpeechPattern = None,
                         **extra) -> Character:
        """
        创建角色。核心性格、绝不会做的事与深层动机都是必填项，
        它们是对抗人格侵蚀的依据。
        """
        self.get_project(project_id)
        _require(name, "角色名称不能为空")
        if role_type not in ROLE_TYPES:
            raise ValidationError(f"未知的角色类型: {role_type}")
        _require(personality_traits, "核心性格特质至少需要一项")
        _require(things_never_do, "“绝不会做的事”至少需要一项")
        _require(deep_motivation, "深层动机不能为空")

        row = CharacterRow(
            project_id=project_id,
            name=name,
            role_type=role_type,
            personality_traits=_dump_json(list(personality_traits)),
            things_never_do=_dump_json(list(things_never_do)),
            deep_motivation=deep_motivation,
            speech_pattern=_dump_json(asdict(speech_pattern)) if speech_pattern else None,
            aliases=_dump_json(extra.pop("aliases", None)),
            catchphrases=_dump_json(extra.pop("catchphrases", None)),
            **extra,
        )
        return self._insert(row, _to_character)

    def create_conflict(self, project_id: int, title: str, current_intensity: int = 5,
                        cant_reconcile_reasons: List[str] = None, maintenance_mechanism: str = "",
                        status: str = "active", side_a: str = None, side_b: str = None,
                        conflict_type: str = None) -> Conflict:
        self.get_project(project_id)
        _require(title, "冲突标题不能为空")
        if not 1 <= int(current_intensity) <= 10:
            raise ValidationError(f"冲突强度必须在 1-10 之间: {current_intensity}")
        if status not in CONFLICT_STATUSES:
            raise ValidationError(f"未知的冲突状态: {status}")
        row = ConflictRow(
            project_id=project_id, title=title, side_a=side_a, side_b=side_b,
            conflict_type=conflict_type, current_intensity=int(current_intensity),
            maintenance_mechanism=maintenance_mechanism,
            cant_reconcile_reasons=_dump_json(list(cant_reconcile_reasons or [])),
            status=status,
        )
        return self._insert(row, _to_conflict)

    def create_foreshadowing(self, project_id: int, title: str, description: str = None,
                             planned_reveal_chapter: int = None, status: str = "buried",
                             priority: int = 1, buried_chapter: int = None) -> Foreshadowing:
        self.get_project(project_id)
        _require(title, "伏笔标题不能为空")
        if status not in FORESHADOWING_STATUSES:
            raise ValidationError(f"未知的伏笔状态: {status}")
        row = ForeshadowingRow(
            project_id=project_id, title=title, description=description,
            planned_reveal_chapter=planned_reveal_chapter, buried_chapter=buried_chapter,
            status=status, priority=priority,
        )
        return self._insert(row, _to_foreshadowing)

    def create_chapter(self, project_id: int, chapter_number: int, title: str,
                       content: str = None, outline: str = None, volume_number: int = None) -> Chapter:
        self.get_project(project_id)
        _require(title, "章节标题不能为空")
        row = ChapterRow(
            project_id=project_id, chapter_number=chapter_number, title=title,
            content=content, outline=outline, volume_number=volume_number,
            word_count=len(content) if content else 0,
        )
        return self._insert(row, _to_chapter)


class GenerationHistory:
    """
    生成历史记录 (Generation Record 的持久化端)。
    每次成功的生成调用写入一条，写入后不再修改。
    """

    def __init__(self, engine: Engine):
        self._session_factory = sessionmaker(bind=engine)

    def insert(self, record: GenerationRecord) -> int:
        session = self._session_factory()
        try:
            row = GenerationRow(
                project_id=record.project_id,
                chapter_id=record.chapter_id,
                generation_type=record.generation_type,
                prompt=record.prompt,
                context_injected=record.context_injected,
                anti_bias_instructions=record.anti_bias_instructions,
                generated_content=record.generated_content,
                tokens_used=record.tokens_used,
                user_rating=record.user_rating,
                accepted=record.accepted,
            )
            session.add(row)
            session.commit()
            logger.info(f"已保存生成记录 #{row.id} ({record.generation_type}, 项目 {record.project_id})")
            return row.id
        except Exception as e:
            session.rollback()
            logger.error(f"保存生成记录失败: {e}")
            raise
        finally:
            session.close()

    def get(self, record_id: int) -> Optional[GenerationRecord]:
        session = self._session_factory()
        try:
            row = session.get(GenerationRow, record_id)
            return _to_record(row) if row else None
        finally:
            session.close()

    def list_for_project(self, project_id: int) -> List[GenerationRecord]:
        session = self._session_factory()
        try:
            rows = session.query(GenerationRow).filter_by(project_id=project_id).order_by(GenerationRow.id).all()
            return [_to_record(r) for r in rows]
        finally:
            session.close()
