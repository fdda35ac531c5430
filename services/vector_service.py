"""
向量索引服务 (Vector Service)
把章节切分成段落、逐段向量化后写入向量存储，并提供按语义检索相关段落的能力。
"""
from __future__ import annotations
import time
import logging
from typing import List

from core.schemas import VectorRecord, SearchResult
from infra.utils import similarity
from infra.utils.text_splitters import get_text_splitter

logger = logging.getLogger(__name__)

class VectorService:
    def __init__(self, embedding_store, embedding_generator, settings):
        self.embedding_store = embedding_store
        self.embedding_generator = embedding_generator
        self.settings = settings
        self.text_splitter = get_text_splitter(settings.indexing)

    def index_chapter(self, project_id: str, chapter_id: str, content: str) -> int:
        """
        重建单个章节的向量索引：先删除旧记录，再逐段向量化写入。
        单段失败只记录日志，不影响其他段落。返回写入的记录数。
        """
        removed = self.embedding_store.delete_by_chapter(chapter_id)
        if removed:
            logger.debug(f"已清除章节 {chapter_id} 的 {removed} 条旧向量记录。")

        chunks = self.text_splitter.split_text(content or "")
        delay = self.settings.indexing.embedding_delay
        stored = 0

        for index, chunk in enumerate(chunks):
            try:
                vector = self.embedding_generator.generate_embedding(chunk)
                if vector:
                    self.embedding_store.put(VectorRecord(
                        project_id=project_id,
                        chapter_id=chapter_id,
                        paragraph_index=index,
                        text=chunk,
                        vector=vector,
                    ))
                    stored += 1
                else:
                    logger.warning(f"章节 {chapter_id} 第 {index} 段返回了空向量，已跳过。")
            except Exception as e:
                logger.error(f"章节 {chapter_id} 第 {index} 段索引失败: {e}", exc_info=True)

            if delay > 0:
                time.sleep(delay)

        logger.info(f"章节 {chapter_id} 索引完成: {stored}/{len(chunks)} 段")
        return stored

    def search_relevant(self, project_id: str, query_text: str, top_k: int = None) -> List[SearchResult]:
        """检索与查询文本最相关的段落"""
        top_k = self.settings.memory.retrieval_count if top_k is None else top_k
        query_vector = self.embedding_generator.generate_embedding(query_text)
        if not query_vector:
            return []

        candidates = self.embedding_store.list_by_project(project_id)
        results = similarity.search(
            query_vector, candidates,
            top_k=top_k, threshold=self.settings.memory.similarity_threshold,
        )
        logger.debug(f"项目 {project_id} 检索到 {len(results)} 条相关段落 (候选 {len(candidates)})")
        return results
