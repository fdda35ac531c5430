import sys
from pathlib import Path
from typing import Dict, List

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.fake_chat_models import FakeListChatModel

sys.path.append(str(Path(__file__).resolve().parents[1]))

from config.settings import AppSettings
from infra.llm.embeddings import EmbeddingGenerator
from infra.llm.factory import TextGenerator
from infra.storage.sql_db import ContentStore
from infra.storage.vector_store import SQLEmbeddingStore
from services.memory_service import MemoryManager
from services.project_service import ProjectService
from services.vector_service import VectorService


KEYWORDS = ("dragon", "sword", "love", "sea")


class KeywordEmbeddings(Embeddings):
    """Counts a few keywords so tests can reason about similarity."""

    def __init__(self):
        self.queries: List[str] = []

    def _vector(self, text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in KEYWORDS] + [0.1]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> List[float]:
        self.queries.append(text)
        return self._vector(text)


class FailingEmbeddings(Embeddings):
    def embed_documents(self, texts):
        raise RuntimeError("embedding service unavailable")

    def embed_query(self, text):
        raise RuntimeError("embedding service unavailable")


def make_text_generator(llms: Dict[str, object]) -> TextGenerator:
    return TextGenerator(lambda role, temperature=None: llms[role])


@pytest.fixture
def settings():
    return AppSettings.from_config({
        "database_url": "sqlite://",
        "indexing": {"embedding_delay": 0},
        "summary": {"regenerate_delay": 0},
        "options": {"retry_delay": 0},
    })


@pytest.fixture
def content_store():
    return ContentStore("sqlite://")


@pytest.fixture
def embedding_store(content_store):
    return SQLEmbeddingStore(content_store)


@pytest.fixture
def keyword_embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def embedding_generator(keyword_embeddings):
    return EmbeddingGenerator(keyword_embeddings, max_chars=2000)


@pytest.fixture
def vector_service(embedding_store, embedding_generator, settings):
    return VectorService(embedding_store, embedding_generator, settings)


@pytest.fixture
def llms():
    return {
        "story": FakeListChatModel(responses=["第一段。第二段。"]),
        "options": FakeListChatModel(responses=['["選項一", "選項二", "選項三", "選項四"]']),
        "memory": FakeListChatModel(responses=["這是一段摘要。"]),
    }


@pytest.fixture
def text_generator(llms):
    return make_text_generator(llms)


@pytest.fixture
def memory_manager(content_store, embedding_store, vector_service, text_generator, settings):
    manager = MemoryManager(content_store, embedding_store, vector_service, text_generator, settings)
    yield manager
    manager.shutdown()


@pytest.fixture
def project_service(content_store, embedding_store):
    return ProjectService(content_store, embedding_store)


@pytest.fixture
def project(content_store):
    return content_store.create_project(
        title="Test", genre="Fantasy", world_setting="A floating archipelago.", plot_outline="Find the lost sea."
    )
