"""
上下文构建器 (Context Builder)
为 AI 生成读取项目当前的叙事状态，组装成一次性的 GenerationContext 快照。
纯读取，不修改任何实体。
"""
import logging
from storyanchor.core.schemas import ContextBuildParams, GenerationContext
from storyanchor.services.anti_bias import cultural_context_label

logger = logging.getLogger(__name__)


class ContextBuilder:
    def __init__(self, store):
        self.store = store

    def build(self, params: ContextBuildParams) -> GenerationContext:
        """
        构建完整上下文。

        Raises:
            NotFoundError: 项目不存在。
        """
        # 1. 获取项目信息
        project = self.store.get_project(params.project_id)

        # 2. 获取角色 (全部角色优先于指定角色)
        characters = []
        if params.include_characters:
            characters = self.store.find_characters_by_project(params.project_id)
        elif params.specific_characters:
            characters = self.store.find_characters_by_ids(params.specific_characters, project_id=params.project_id)
            missing = len(set(params.specific_characters)) - len(characters)
            if missing:
                logger.warning(f"项目 {params.project_id} 中有 {missing} 个指定角色不存在，已忽略")

        # 3. 获取活跃伏笔
        active_foreshadowing = []
        if params.include_foreshadowing:
            active_foreshadowing = self.store.find_active_foreshadowing(params.project_id)

        # 4. 获取活跃冲突
        active_conflicts = []
        if params.include_conflicts:
            active_conflicts = self.store.find_active_conflicts(params.project_id)

        # 5. 获取相关章节 (只按显式传入的 ID)
        recent_chapters = None
        if params.include_chapters:
            recent_chapters = self.store.find_chapters_by_ids(params.include_chapters, project_id=params.project_id)
            if len(recent_chapters) < len(set(params.include_chapters)):
                logger.warning(f"项目 {params.project_id} 中部分指定章节不存在，已忽略")

        logger.debug(
            f"项目 {project.id} 上下文: 角色 {len(characters)}，伏笔 {len(active_foreshadowing)}，"
            f"冲突 {len(active_conflicts)}，章节 {len(recent_chapters or [])}"
        )

        return GenerationContext(
            project=project,
            cultural_context_label=cultural_context_label(project.cultural_context),
            characters=characters,
            active_foreshadowing=active_foreshadowing,
            active_conflicts=active_conflicts,
            recent_chapters=recent_chapters,
        )
