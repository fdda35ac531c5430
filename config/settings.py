"""
运行时配置对象 (Settings)
把合并后的配置字典解析为强类型的配置对象，在构造各组件时显式传入，
不再依赖全局可变状态。

可识别的配置项：
- models / steps: 各角色 (story, options, memory) 使用的模型ID及其提供商参数，
  API Key 通过 *_env 字段指定的环境变量读取。
- embeddings / active_embedding_model: 向量模型。
- memory: 分层记忆参数（最近章节数、检索数量、相似度阈值、截断长度、默认写作模式）。
- indexing: 切分与向量化参数（块大小、重叠、最短块长度、断句标点、请求间隔、向量输入上限）。
- summary: 章节摘要参数（触发长度、输入上限、头部比例、重建记忆的阈值与间隔）。
- options: 剧情选项参数（数量、解析失败重试次数、重试间隔、参考的章节结尾长度）。
- vector_store: 向量记录存储后端 (sqlite | chroma) 与集合名。
- database_url: SQLAlchemy 数据库地址。
"""
from dataclasses import dataclass, field
from typing import Dict, Any

from core.exceptions import ConfigurationError


@dataclass
class MemorySettings:
    recent_chapter_count: int = 2
    retrieval_count: int = 5
    similarity_threshold: float = 0.3
    recent_chapter_max_chars: int = 3000
    brief_chars: int = 200
    default_writing_mode: str = "balanced"


@dataclass
class IndexingSettings:
    chunk_size: int = 500
    chunk_overlap: int = 50
    min_chunk_length: int = 20
    sentence_endings: str = "。？！.?!"
    embedding_delay: float = 0.2
    embedding_max_chars: int = 2000


@dataclass
class SummarySettings:
    min_length: int = 300
    max_input: int = 4000
    head_ratio: float = 0.4
    regenerate_min_length: int = 100
    regenerate_delay: float = 1.0


@dataclass
class OptionsSettings:
    count: int = 4
    max_retries: int = 1
    retry_delay: float = 1.5
    context_chars: int = 800


@dataclass
class VectorStoreSettings:
    backend: str = "sqlite"
    collection_name: str = "chapter_embeddings"


@dataclass
class AppSettings:
    database_url: str = "sqlite:///data/novel.db"
    memory: MemorySettings = field(default_factory=MemorySettings)
    indexing: IndexingSettings = field(default_factory=IndexingSettings)
    summary: SummarySettings = field(default_factory=SummarySettings)
    options: OptionsSettings = field(default_factory=OptionsSettings)
    vector_store: VectorStoreSettings = field(default_factory=VectorStoreSettings)
    # 原始配置字典，供 LLM / Embedding 工厂解析模型与提供商
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: dict) -> "AppSettings":
        """从合并后的配置字典构建配置对象，未知字段直接报错以免静默失效。"""
        config = config or {}
        try:
            settings = cls(
                database_url=config.get("database_url", cls.database_url),
                memory=MemorySettings(**(config.get("memory") or {})),
                indexing=IndexingSettings(**(config.get("indexing") or {})),
                summary=SummarySettings(**(config.get("summary") or {})),
                options=OptionsSettings(**(config.get("options") or {})),
                vector_store=VectorStoreSettings(**(config.get("vector_store") or {})),
                raw=config,
            )
        except TypeError as e:
            raise ConfigurationError(f"配置项无法识别: {e}")

        if settings.memory.recent_chapter_count < 0:
            raise ConfigurationError("memory.recent_chapter_count 不能为负数。")
        if settings.indexing.chunk_overlap >= settings.indexing.chunk_size:
            raise ConfigurationError("indexing.chunk_overlap 必须小于 chunk_size。")
        if settings.vector_store.backend not in ("sqlite", "chroma"):
            raise ConfigurationError(f"未知的向量存储后端: {settings.vector_store.backend}")
        return settings
