"""
Vector Store Manager
段落向量记录的存储适配器：按项目/章节写入、列出与删除。
不做去重，重复索引由索引服务的"先删后写"保证。
提供 sqlite（与内容库共用数据库）和 ChromaDB 两种后端。
"""
import os
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import List

import chromadb
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import VectorStoreOperationError
from core.models import EmbeddingRecord
from core.schemas import VectorRecord

logger = logging.getLogger(__name__)

class EmbeddingStore(ABC):
    """向量记录存储的抽象接口"""

    @abstractmethod
    def put(self, record: VectorRecord) -> VectorRecord:
        ...

    @abstractmethod
    def list_by_project(self, project_id: str) -> List[VectorRecord]:
        ...

    @abstractmethod
    def list_by_chapter(self, chapter_id: str) -> List[VectorRecord]:
        ...

    @abstractmethod
    def delete_by_chapter(self, chapter_id: str) -> int:
        ...

    @abstractmethod
    def delete_by_project(self, project_id: str) -> int:
        ...

# --- sqlite 后端 ---

class SQLEmbeddingStore(EmbeddingStore):
    """
    把向量记录存入内容数据库的 embedding_records 表。
    向量以 JSON 数组形式保存。
    """

    def __init__(self, content_store):
        self._content_store = content_store

    @staticmethod
    def _to_record(row: EmbeddingRecord) -> VectorRecord:
        return VectorRecord(
            id=row.id,
            project_id=row.project_id,
            chapter_id=row.chapter_id,
            paragraph_index=row.paragraph_index,
            text=row.text,
            vector=[float(v) for v in (row.vector or [])],
            created_at=row.created_at,
        )

    def put(self, record: VectorRecord) -> VectorRecord:
        session = self._content_store.get_session()
        try:
            session.add(EmbeddingRecord(
                id=record.id,
                project_id=record.project_id,
                chapter_id=record.chapter_id,
                paragraph_index=record.paragraph_index,
                text=record.text,
                vector=list(record.vector),
                created_at=record.created_at,
            ))
            session.commit()
            return record
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"写入向量记录失败: {e}")
            raise VectorStoreOperationError(f"写入向量记录失败: {e}")
        finally:
            session.close()

    def _list(self, **filters) -> List[VectorRecord]:
        session = self._content_store.get_session()
        try:
            rows = (
                session.query(EmbeddingRecord)
                .filter_by(**filters)
                .order_by(EmbeddingRecord.created_at, EmbeddingRecord.paragraph_index)
                .all()
            )
            return [self._to_record(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"读取向量记录失败 {filters}: {e}")
            raise VectorStoreOperationError(f"读取向量记录失败: {e}")
        finally:
            session.close()

    def list_by_project(self, project_id: str) -> List[VectorRecord]:
        return self._list(project_id=project_id)

    def list_by_chapter(self, chapter_id: str) -> List[VectorRecord]:
        return self._list(chapter_id=chapter_id)

    def _delete(self, **filters) -> int:
        session = self._content_store.get_session()
        try:
            deleted = session.query(EmbeddingRecord).filter_by(**filters).delete()
            session.commit()
            logger.debug(f"已删除 {deleted} 条向量记录: {filters}")
            return deleted
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"删除向量记录失败 {filters}: {e}")
            raise VectorStoreOperationError(f"删除向量记录失败: {e}")
        finally:
            session.close()

    def delete_by_chapter(self, chapter_id: str) -> int:
        return self._delete(chapter_id=chapter_id)

    def delete_by_project(self, project_id: str) -> int:
        return self._delete(project_id=project_id)

# --- ChromaDB 后端 ---

# 使用 LRU Cache 管理客户端实例，避免重复创建，同时防止内存无限增长
@lru_cache(maxsize=5)
def get_chroma_client(project_root: str):
    """
    获取指定目录的 ChromaDB 持久化客户端单例。
    """
    chroma_path = os.path.join(project_root, "chroma_db")
    os.makedirs(chroma_path, exist_ok=True)

    try:
        client = chromadb.PersistentClient(path=chroma_path)
        logger.info(f"ChromaDB 客户端已初始化: {chroma_path}")
        return client
    except Exception as e:
        logger.error(f"初始化 ChromaDB 客户端失败 ({chroma_path}): {e}", exc_info=True)
        raise VectorStoreOperationError(f"初始化 ChromaDB 客户端失败: {e}")

class ChromaEmbeddingStore(EmbeddingStore):
    """
    把向量记录存入 ChromaDB 集合。
    相似度排序仍由 similarity.search 完成，这里只利用 Chroma 的元数据过滤做存取。
    """

    def __init__(self, client, collection_name: str = "chapter_embeddings"):
        self.client = client
        self.collection_name = collection_name
        self.collection = client.get_or_create_collection(name=collection_name)

    def put(self, record: VectorRecord) -> VectorRecord:
        try:
            self.collection.add(
                ids=[record.id],
                embeddings=[list(record.vector)],
                documents=[record.text],
                metadatas=[{
                    "project_id": record.project_id,
                    "chapter_id": record.chapter_id,
                    "paragraph_index": record.paragraph_index,
                    "created_at": record.created_at.isoformat(),
                }],
            )
            return record
        except Exception as e:
            logger.error(f"写入集合 '{self.collection_name}' 失败: {e}", exc_info=True)
            raise VectorStoreOperationError(f"写入向量记录失败: {e}")

    def _list(self, where: dict) -> List[VectorRecord]:
        try:
            data = self.collection.get(where=where, include=["embeddings", "documents", "metadatas"])
        except Exception as e:
            logger.error(f"读取集合 '{self.collection_name}' 失败 {where}: {e}", exc_info=True)
            raise VectorStoreOperationError(f"读取向量记录失败: {e}")

        ids = data.get("ids") or []
        embeddings = data.get("embeddings")
        if embeddings is None:
            embeddings = [[] for _ in ids]
        documents = data.get("documents") or [""] * len(ids)
        metadatas = data.get("metadatas") or [{}] * len(ids)

        records = []
        for record_id, vector, text, meta in zip(ids, embeddings, documents, metadatas):
            meta = meta or {}
            created_at = meta.get("created_at")
            records.append(VectorRecord(
                id=record_id,
                project_id=meta.get("project_id", ""),
                chapter_id=meta.get("chapter_id", ""),
                paragraph_index=int(meta.get("paragraph_index", 0)),
                text=text or "",
                vector=[float(v) for v in vector],
                created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
            ))
        records.sort(key=lambda r: (r.created_at, r.paragraph_index))
        return records

    def list_by_project(self, project_id: str) -> List[VectorRecord]:
        return self._list({"project_id": project_id})

    def list_by_chapter(self, chapter_id: str) -> List[VectorRecord]:
        return self._list({"chapter_id": chapter_id})

    def _delete(self, where: dict) -> int:
        try:
            existing = self.collection.get(where=where, include=[])
            ids = existing.get("ids") or []
            if ids:
                self.collection.delete(ids=ids)
            logger.debug(f"已从集合 '{self.collection_name}' 删除 {len(ids)} 条记录: {where}")
            return len(ids)
        except Exception as e:
            logger.error(f"按元数据删除失败 {where}: {e}", exc_info=True)
            raise VectorStoreOperationError(f"删除向量记录失败: {e}")

    def delete_by_chapter(self, chapter_id: str) -> int:
        return self._delete({"chapter_id": chapter_id})

    def delete_by_project(self, project_id: str) -> int:
        return self._delete({"project_id": project_id})

def create_embedding_store(settings, content_store, chroma_client=None) -> EmbeddingStore:
    """根据配置选择向量存储后端"""
    backend = settings.vector_store.backend
    if backend == "chroma":
        client = chroma_client or get_chroma_client(os.getenv("CHROMA_PERSIST_DIRECTORY", "data"))
        return ChromaEmbeddingStore(client, settings.vector_store.collection_name)
    return SQLEmbeddingStore(content_store)
