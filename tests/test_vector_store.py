import uuid
from datetime import datetime, timedelta

import chromadb
import pytest

from config.settings import AppSettings
from core.schemas import VectorRecord
from infra.storage.vector_store import (
    ChromaEmbeddingStore, SQLEmbeddingStore, create_embedding_store,
)


@pytest.fixture(params=["sqlite", "chroma"])
def store(request, content_store):
    if request.param == "sqlite":
        return SQLEmbeddingStore(content_store)
    return ChromaEmbeddingStore(chromadb.EphemeralClient(), collection_name=f"test_{uuid.uuid4().hex}")


def _record(project_id, chapter_id, index, vector, offset=0):
    return VectorRecord(
        project_id=project_id, chapter_id=chapter_id, paragraph_index=index,
        text=f"{chapter_id}-{index}", vector=vector,
        created_at=datetime(2024, 1, 1) + timedelta(seconds=offset),
    )


def test_put_and_list_by_project_and_chapter(store):
    store.put(_record("p1", "c1", 0, [1.0, 0.0], offset=0))
    store.put(_record("p1", "c1", 1, [0.0, 1.0], offset=1))
    store.put(_record("p1", "c2", 0, [0.5, 0.5], offset=2))
    store.put(_record("p2", "c3", 0, [1.0, 1.0], offset=3))

    assert [r.text for r in store.list_by_project("p1")] == ["c1-0", "c1-1", "c2-0"]
    chapter_records = store.list_by_chapter("c1")
    assert [r.paragraph_index for r in chapter_records] == [0, 1]
    assert chapter_records[1].vector == pytest.approx([0.0, 1.0])
    assert store.list_by_project("missing") == []


def test_delete_by_chapter_and_project(store):
    store.put(_record("p1", "c1", 0, [1.0, 0.0]))
    store.put(_record("p1", "c2", 0, [0.0, 1.0], offset=1))
    store.put(_record("p2", "c3", 0, [1.0, 1.0], offset=2))

    assert store.delete_by_chapter("c1") == 1
    assert [r.chapter_id for r in store.list_by_project("p1")] == ["c2"]
    assert store.delete_by_project("p1") == 1
    assert store.list_by_project("p1") == []
    assert len(store.list_by_project("p2")) == 1
    assert store.delete_by_chapter("missing") == 0


def test_adapter_does_not_deduplicate(store):
    store.put(_record("p1", "c1", 0, [1.0, 0.0]))
    store.put(_record("p1", "c1", 0, [1.0, 0.0]))

    assert len(store.list_by_chapter("c1")) == 2


def test_factory_selects_backend(content_store):
    sqlite_settings = AppSettings.from_config({})
    chroma_settings = AppSettings.from_config({"vector_store": {"backend": "chroma",
                                                                "collection_name": f"f_{uuid.uuid4().hex}"}})

    assert isinstance(create_embedding_store(sqlite_settings, content_store), SQLEmbeddingStore)
    chroma_store = create_embedding_store(chroma_settings, content_store, chroma_client=chromadb.EphemeralClient())
    assert isinstance(chroma_store, ChromaEmbeddingStore)
