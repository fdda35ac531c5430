import pytest

from core.exceptions import NotFoundError
from core.schemas import CharacterDraft, VectorRecord


def _vector(project_id, chapter_id):
    return VectorRecord(project_id=project_id, chapter_id=chapter_id, paragraph_index=0, text="t", vector=[1.0])


def test_create_project_with_roster(project_service, content_store):
    project = project_service.create_project(
        "  My Novel  ", genre="Fantasy", characters=[CharacterDraft(name="Aria", personality="brave")]
    )

    assert project.title == "My Novel"
    assert [(c.name, c.personality) for c in content_store.list_characters(project.id)] == [("Aria", "brave")]


def test_create_project_requires_title(project_service):
    with pytest.raises(ValueError):
        project_service.create_project("   ")


def test_save_characters_upserts_and_removes(project_service, content_store, project):
    aria = content_store.create_character(project.id, name="Aria")
    content_store.create_character(project.id, name="Bram")

    roster = project_service.save_characters(project.id, [
        CharacterDraft(name="Aria", personality="brave", id=aria.id),
        CharacterDraft(name="Cato"),
    ])

    assert sorted(c.name for c in roster) == ["Aria", "Cato"]
    assert content_store.get_character(aria.id).personality == "brave"


def test_update_project_merges_fields_and_roster(project_service, content_store, project):
    project_service.update_project(project.id, genre="Sci-fi", characters=[CharacterDraft(name="Dex")])

    updated = content_store.get_project(project.id)
    assert (updated.title, updated.genre) == ("Test", "Sci-fi")
    assert [c.name for c in content_store.list_characters(project.id)] == ["Dex"]


def test_delete_project_cascades_to_embedding_store(project_service, content_store, embedding_store, project):
    chapter = content_store.create_chapter(project.id, content="text")
    embedding_store.put(_vector(project.id, chapter.id))

    project_service.delete_project(project.id)

    assert content_store.get_project(project.id) is None
    assert content_store.list_chapters(project.id) == []
    assert embedding_store.list_by_project(project.id) == []
    with pytest.raises(NotFoundError):
        project_service.delete_project(project.id)


def test_delete_chapter_removes_its_embeddings(project_service, content_store, embedding_store, project):
    keep = content_store.create_chapter(project.id, content="keep")
    drop = content_store.create_chapter(project.id, content="drop")
    embedding_store.put(_vector(project.id, keep.id))
    embedding_store.put(_vector(project.id, drop.id))

    project_service.delete_chapter(drop.id)

    assert [c.id for c in content_store.list_chapters(project.id)] == [keep.id]
    assert [r.chapter_id for r in embedding_store.list_by_project(project.id)] == [keep.id]
    with pytest.raises(NotFoundError):
        project_service.delete_chapter(drop.id)


def test_rewrite_chapter(project_service, content_store, embedding_store, project):
    chapter = content_store.create_chapter(project.id, content="old", prompt="p", summary="sum")
    embedding_store.put(_vector(project.id, chapter.id))

    rewritten = project_service.rewrite_chapter(chapter.id, "new content")

    assert (rewritten.chapter_number, rewritten.content, rewritten.prompt, rewritten.summary) == (
        1, "new content", "p", ""
    )
    assert embedding_store.list_by_chapter(chapter.id) == []
