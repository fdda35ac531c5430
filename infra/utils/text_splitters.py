"""
文本切分器 (Text Splitters)
把章节正文切成适合向量化的段落块：先按空行分段，过长的段落在句末标点处断开，
相邻块之间保留重叠以维持上下文。
"""
import re
import logging
from typing import List, Sequence

from langchain_text_splitters import TextSplitter

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\n+")
DEFAULT_SENTENCE_ENDINGS = "。？！.?!"

class ParagraphTextSplitter(TextSplitter):
    """
    按自然段切分的 LangChain 兼容切分器。

    - 不超过 chunk_size 的段落原样保留（去除首尾空白）；
    - 过长段落在 chunk_size 以内最后一个句末标点处断开，断点必须超过半长，否则硬切；
    - 下一块从上一个断点往前 chunk_overlap 个字符开始；
    - 长度不大于 min_chunk_length 的块视为噪声丢弃。
    """

    def __init__(self,
                 chunk_size: int = 500,
                 chunk_overlap: int = 50,
                 min_chunk_length: int = 20,
                 sentence_endings: Sequence[str] = DEFAULT_SENTENCE_ENDINGS,
                 **kwargs):
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)
        self.max_length = chunk_size
        self.overlap = chunk_overlap
        self.min_chunk_length = min_chunk_length
        self.sentence_endings = tuple(sentence_endings)

    def _find_break(self, paragraph: str, start: int, end: int) -> int:
        """返回 [start, end] 范围内最后一个句末标点的位置，找不到返回 -1"""
        return max(paragraph.rfind(mark, start, end + 1) for mark in self.sentence_endings)

    def _split_long_paragraph(self, paragraph: str) -> List[str]:
        pieces = []
        start = 0
        length = len(paragraph)
        while start < length:
            end = start + self.max_length
            if end < length:
                break_point = self._find_break(paragraph, start, end)
                if break_point > start + self.max_length / 2:
                    end = break_point + 1
            pieces.append(paragraph[start:end].strip())
            if end >= length:
                break
            start = max(end - self.overlap, start + 1)
        return pieces

    def split_text(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []

        chunks = []
        for paragraph in PARAGRAPH_BREAK.split(text):
            if not paragraph.strip():
                continue
            if len(paragraph) <= self.max_length:
                chunks.append(paragraph.strip())
            else:
                chunks.extend(self._split_long_paragraph(paragraph))

        result = [c for c in chunks if len(c) > self.min_chunk_length]
        logger.debug(f"文本已切分为 {len(result)} 个块（丢弃 {len(chunks) - len(result)} 个过短块）。")
        return result

def get_text_splitter(indexing_settings) -> ParagraphTextSplitter:
    """根据索引配置实例化切分器"""
    return ParagraphTextSplitter(
        chunk_size=indexing_settings.chunk_size,
        chunk_overlap=indexing_settings.chunk_overlap,
        min_chunk_length=indexing_settings.min_chunk_length,
        sentence_endings=indexing_settings.sentence_endings,
    )

def split(text: str, max_length: int = 500, overlap: int = 50, **kwargs) -> List[str]:
    """按默认规则切分文本的便捷函数"""
    return ParagraphTextSplitter(chunk_size=max_length, chunk_overlap=overlap, **kwargs).split_text(text)
