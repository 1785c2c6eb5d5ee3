import os

import pytest

from storyanchor.prompts import force_reload_prompts, get_prompt_template, get_prompt_text
from storyanchor.prompts.manager import PromptCache


def test_templates_declare_expected_variables():
    assert set(get_prompt_template("new_chapter").input_variables) == {
        "heading", "outline", "world_setting", "character_blocks", "recent_chapters_section",
        "foreshadowing_section", "conflict_section", "instructions", "cultural_label", "genre", "chapter_ref",
    }
    assert set(get_prompt_template("continue_writing").input_variables) == {
        "current_content", "hint_section", "character_blocks", "instructions",
    }


def test_unknown_prompt_key():
    with pytest.raises(ValueError):
        get_prompt_text("no_such_prompt")


def test_cache_reloads_changed_file(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("greeting: 你好\n", encoding="utf-8")
    cache = PromptCache(str(path))
    assert cache.load() == {"greeting": "你好"}

    path.write_text("greeting: 再见\n", encoding="utf-8")
    stat = os.stat(path)
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))

    assert cache.load() == {"greeting": "再见"}


def test_cache_invalidate_forces_reparse(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("greeting: 你好\n", encoding="utf-8")
    cache = PromptCache(str(path))
    first = cache.load()

    cache.invalidate()

    assert cache.load() is not first


def test_missing_prompt_file_is_empty(tmp_path):
    assert PromptCache(str(tmp_path / "missing.yaml")).load() == {}


def test_force_reload_keeps_prompts_available():
    force_reload_prompts()

    assert get_prompt_text("chapter_system_prompt").startswith("你是一个专业的小说作家")
