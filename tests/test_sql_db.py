import time

import pytest

from core.exceptions import NotFoundError, StorageOperationError
from core.schemas import VectorRecord
from infra.storage.sql_db import ContentStore


def test_project_crud_and_merge_update(content_store):
    project = content_store.create_project(title="Test", genre="Fantasy")

    updated = content_store.update_project(project.id, world_setting="Sky islands", title=None)

    assert updated.title == "Test"
    assert updated.world_setting == "Sky islands"
    assert content_store.get_project(project.id).world_setting == "Sky islands"
    assert content_store.get_project("missing") is None
    with pytest.raises(NotFoundError):
        content_store.require_project("missing")
    with pytest.raises(NotFoundError):
        content_store.update_project("missing", title="x")


def test_list_projects_most_recent_first(content_store):
    older = content_store.create_project(title="Older")
    newer = content_store.create_project(title="Newer")
    time.sleep(0.01)
    content_store.create_character(older.id, name="Aria")

    assert [p.id for p in content_store.list_projects()] == [older.id, newer.id]


def test_chapters_are_numbered_and_listed_in_order(content_store, project):
    first = content_store.create_chapter(project.id, content="one")
    second = content_store.create_chapter(project.id, content="two", prompt="go on")

    assert (first.chapter_number, first.title, first.summary) == (1, "第1章", "")
    assert (second.chapter_number, second.prompt) == (2, "go on")
    assert [c.content for c in content_store.list_chapters(project.id)] == ["one", "two"]
    assert content_store.count_chapters(project.id) == 2


def test_duplicate_chapter_number_is_rejected(content_store, project):
    content_store.create_chapter(project.id, content="one", chapter_number=1)

    with pytest.raises(StorageOperationError):
        content_store.create_chapter(project.id, content="again", chapter_number=1)


def test_chapter_for_missing_project_is_rejected(content_store):
    with pytest.raises(NotFoundError):
        content_store.create_chapter("missing", content="text")


def test_child_saves_bump_project_updated_at(content_store, project):
    before = content_store.get_project(project.id).updated_at
    time.sleep(0.01)

    chapter = content_store.create_chapter(project.id, content="text")
    after_create = content_store.get_project(project.id).updated_at
    time.sleep(0.01)
    content_store.update_chapter(chapter.id, summary="short")

    assert after_create > before
    assert content_store.get_project(project.id).updated_at > after_create


def test_character_crud(content_store, project):
    aria = content_store.create_character(project.id, name="Aria", personality="brave")
    content_store.create_character(project.id, name="Bram")

    content_store.update_character(aria.id, background="orphan")
    content_store.delete_character(aria.id)

    assert [c.name for c in content_store.list_characters(project.id)] == ["Bram"]
    assert content_store.get_character(aria.id) is None


def test_delete_project_cascades(content_store, embedding_store, project):
    content_store.create_character(project.id, name="Aria")
    chapter = content_store.create_chapter(project.id, content="text")
    embedding_store.put(VectorRecord(project_id=project.id, chapter_id=chapter.id,
                                     paragraph_index=0, text="text", vector=[1.0]))

    content_store.delete_project(project.id)

    assert content_store.get_project(project.id) is None
    assert content_store.list_characters(project.id) == []
    assert content_store.list_chapters(project.id) == []
    assert embedding_store.list_by_project(project.id) == []


def test_file_database_is_created(tmp_path):
    db_path = tmp_path / "nested" / "novel.db"

    store = ContentStore(f"sqlite:///{db_path}")
    store.create_project(title="Persisted")

    assert db_path.exists()
    assert [p.title for p in ContentStore(f"sqlite:///{db_path}").list_projects()] == ["Persisted"]
