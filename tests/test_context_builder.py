import pytest

from storyanchor.core.exceptions import NotFoundError
from storyanchor.core.schemas import ContextBuildParams
from storyanchor.services.context_builder import ContextBuilder


def _character(store, project_id, name, role_type):
    return store.create_character(
        project_id,
        name=name,
        role_type=role_type,
        personality_traits=["隐忍"],
        things_never_do=["出卖同门"],
        deep_motivation="查清旧案",
    )


@pytest.fixture
def builder(store):
    return ContextBuilder(store)


def test_missing_project_raises(builder):
    with pytest.raises(NotFoundError):
        builder.build(ContextBuildParams(project_id=404, include_characters=True))


def test_flags_off_gives_bare_context(builder, project, alice):
    context = builder.build(ContextBuildParams(project_id=project.id))

    assert context.project == project
    assert context.cultural_context_label == "中式"
    assert context.world_setting == project.world_setting
    assert context.characters == []
    assert context.active_foreshadowing == []
    assert context.active_conflicts == []
    assert context.recent_chapters is None


def test_all_characters_ordered_by_role_then_name(store, builder, project):
    _character(store, project.id, "沈舟", "supporting")
    _character(store, project.id, "林照", "protagonist")
    _character(store, project.id, "顾长风", "antagonist")
    _character(store, project.id, "阿蛮", "protagonist")

    context = builder.build(ContextBuildParams(project_id=project.id, include_characters=True))

    assert [(c.role_type, c.name) for c in context.characters] == [
        ("antagonist", "顾长风"),
        ("protagonist", "林照"),
        ("protagonist", "阿蛮"),
        ("supporting", "沈舟"),
    ]


def test_include_characters_takes_precedence_over_subset(store, builder, project, alice):
    other = _character(store, project.id, "沈舟", "supporting")

    context = builder.build(ContextBuildParams(
        project_id=project.id, include_characters=True, specific_characters=[other.id],
    ))

    assert {c.id for c in context.characters} == {alice.id, other.id}


def test_specific_characters_silently_omit_missing_and_foreign(store, builder, project, alice):
    other_project = store.create_project(name="另一部")
    stranger = _character(store, other_project.id, "外人", "minor")

    context = builder.build(ContextBuildParams(
        project_id=project.id, specific_characters=[alice.id, 999, stranger.id],
    ))

    assert [c.id for c in context.characters] == [alice.id]


def test_active_conflicts_by_intensity(store, builder, project):
    store.create_conflict(project.id, title="小摩擦", current_intensity=3)
    store.create_conflict(project.id, title="灭门之仇", current_intensity=10)
    store.create_conflict(project.id, title="已了结", current_intensity=9, status="resolved")

    context = builder.build(ContextBuildParams(project_id=project.id, include_conflicts=True))

    assert [c.title for c in context.active_conflicts] == ["灭门之仇", "小摩擦"]


def test_active_foreshadowing_by_priority(store, builder, project):
    store.create_foreshadowing(project.id, title="断剑", priority=1)
    store.create_foreshadowing(project.id, title="旧信", priority=3, status="progressing")
    store.create_foreshadowing(project.id, title="已揭晓", priority=5, status="revealed")

    context = builder.build(ContextBuildParams(project_id=project.id, include_foreshadowing=True))

    assert [f.title for f in context.active_foreshadowing] == ["旧信", "断剑"]


def test_recent_chapters_in_chapter_order(store, builder, project):
    third = store.create_chapter(project.id, 3, "夜渡", content="船行江上。")
    first = store.create_chapter(project.id, 1, "雨夜", content="雨下了一整夜。")
    store.create_chapter(project.id, 2, "未选中")

    context = builder.build(ContextBuildParams(
        project_id=project.id, include_chapters=[third.id, first.id, 12345],
    ))

    assert [ch.chapter_number for ch in context.recent_chapters] == [1, 3]


@pytest.mark.parametrize("cultural_context,label", [
    ("chinese", "中式"), ("japanese", "日式"), ("western", "西式"), ("classical", "古典"),
])
def test_cultural_context_label(store, builder, cultural_context, label):
    project = store.create_project(name="标签", cultural_context=cultural_context)

    context = builder.build(ContextBuildParams(project_id=project.id))

    assert context.cultural_context_label == label
