"""
业务对象定义 (Schemas)
定义系统各层级间传递的强类型数据结构，确保数据流透明且可预测。
"""
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional

@dataclass
class VectorRecord:
    """
    段落向量记录
    与具体存储后端无关，由向量存储适配器负责持久化。
    """
    project_id: str
    chapter_id: str
    paragraph_index: int
    text: str
    vector: List[float]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

@dataclass
class SearchResult:
    """相似度检索的单条结果"""
    record: VectorRecord
    similarity: float

    @property
    def text(self) -> str:
        return self.record.text

@dataclass
class MemoryStats:
    """记忆统计"""
    chapter_count: int = 0
    embedding_count: int = 0
    total_chars: int = 0
    summary_count: int = 0

    def to_dict(self):
        return asdict(self)

@dataclass
class CharacterDraft:
    """暂存区中的角色，id 为空表示尚未保存"""
    name: str
    personality: str = ""
    background: str = ""
    relationships: str = ""
    id: Optional[str] = None

@dataclass
class RegenerationResult:
    """重建记忆的执行结果"""
    success_count: int = 0
    error_count: int = 0
    indexed_records: int = 0
