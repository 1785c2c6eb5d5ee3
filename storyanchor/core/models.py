"""
核心数据模型 (Data Models)
定义存储在 SQLite 中的表结构。列表类字段以 JSON 文本保存，仅在存储层内部解析。
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ProjectRow(Base):
    """项目表"""
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    genre = Column(String, nullable=True)
    target_words = Column(Integer, nullable=True)
    world_setting = Column(Text, nullable=True)
    cultural_context = Column(String, nullable=False, default="chinese")  # chinese / japanese / western / classical
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ChapterRow(Base):
    """章节表"""
    __tablename__ = 'chapters'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, index=True)
    volume_number = Column(Integer, nullable=True)
    chapter_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    outline = Column(Text, nullable=True)
    word_count = Column(Integer, default=0)
    status = Column(String, default="draft")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CharacterRow(Base):
    """
    角色表
    personality_traits / things_never_do 是对抗人格侵蚀的关键字段。
    """
    __tablename__ = 'characters'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    aliases = Column(Text, nullable=True)  # JSON
    role_type = Column(String, nullable=False)

    appearance = Column(Text, nullable=True)
    background = Column(Text, nullable=True)

    personality_traits = Column(Text, nullable=False)  # JSON
    core_values = Column(Text, nullable=True)
    things_never_do = Column(Text, nullable=False)  # JSON

    surface_behavior = Column(Text, nullable=True)
    deep_motivation = Column(Text, nullable=False)
    psychological_trauma = Column(Text, nullable=True)

    speech_pattern = Column(Text, nullable=True)  # JSON
    catchphrases = Column(Text, nullable=True)  # JSON
    language_style = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ConflictRow(Base):
    """冲突表"""
    __tablename__ = 'conflicts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    side_a = Column(String, nullable=True)
    side_b = Column(String, nullable=True)
    conflict_type = Column(String, nullable=True)
    current_intensity = Column(Integer, nullable=True)  # 1-10
    maintenance_mechanism = Column(Text, nullable=True)
    cant_reconcile_reasons = Column(Text, nullable=True)  # JSON
    status = Column(String, default="active")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ForeshadowingRow(Base):
    """伏笔表"""
    __tablename__ = 'foreshadowing'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    planned_reveal_chapter = Column(Integer, nullable=True)
    buried_chapter = Column(Integer, nullable=True)  # 埋入时的章节号
    status = Column(String, default="buried", index=True)
    priority = Column(Integer, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GenerationRow(Base):
    """
    AI 生成历史表
    记录每次生成的输入 (prompt、注入上下文、对抗指令) 与输出。
    """
    __tablename__ = 'ai_generations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete="CASCADE"), nullable=False, index=True)
    chapter_id = Column(Integer, ForeignKey('chapters.id'), nullable=True, index=True)
    generation_type = Column(String, nullable=False)

    prompt = Column(Text, nullable=True)
    context_injected = Column(Text, nullable=True)
    anti_bias_instructions = Column(Text, nullable=True)

    generated_content = Column(Text, nullable=True)
    tokens_used = Column(Integer, default=0)

    user_rating = Column(Integer, nullable=True)
    accepted = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
