"""
相似度检索 (Similarity Search)
在候选向量集合上做余弦相似度排序，线性扫描，不建近似索引。
"""
import logging
from typing import List, Sequence

import numpy as np

from core.schemas import SearchResult, VectorRecord

logger = logging.getLogger(__name__)

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    计算余弦相似度。
    任一向量为空、长度不一致或范数为 0 时返回 0.0。
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))

def search(query_vector: Sequence[float], candidates: Sequence[VectorRecord],
           top_k: int = 5, threshold: float = 0.3) -> List[SearchResult]:
    """
    返回相似度不低于 threshold 的前 top_k 条结果，按相似度降序；
    相似度相同时保持候选的原始顺序。
    """
    if query_vector is None or len(query_vector) == 0 or not candidates:
        return []

    scored = [
        SearchResult(record=candidate, similarity=cosine_similarity(query_vector, candidate.vector))
        for candidate in candidates
        if candidate.vector is not None and len(candidate.vector) > 0
    ]
    kept = [r for r in scored if r.similarity >= threshold]
    kept.sort(key=lambda r: r.similarity, reverse=True)

    logger.debug(f"检索 {len(candidates)} 个候选，{len(kept)} 个超过阈值 {threshold}，返回前 {top_k} 个。")
    return kept[:max(top_k, 0)]
