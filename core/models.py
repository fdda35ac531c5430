"""
核心数据模型 (Data Models)
定义存储在 SQLite 中的表结构：项目、角色、章节与段落向量记录。
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def _new_id() -> str:
    return str(uuid.uuid4())

class Project(Base):
    """
    项目表
    世界观与主线剧情都是自由文本；任何子对象保存时都会刷新 updated_at。
    """
    __tablename__ = 'projects'

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(200), nullable=False, default="")
    genre = Column(String(50), nullable=False, default="")
    world_setting = Column(Text, nullable=False, default="")
    plot_outline = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, index=True)

    def __repr__(self):
        return f"<Project(id={self.id}, title={self.title})>"

class Character(Base):
    """角色表"""
    __tablename__ = 'characters'

    id = Column(String(36), primary_key=True, default=_new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    personality = Column(Text, nullable=False, default="")
    background = Column(Text, nullable=False, default="")
    relationships = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Character(id={self.id}, name={self.name})>"

class Chapter(Base):
    """
    章节表
    summary 为空字符串表示尚未生成摘要；重写章节时清空。
    """
    __tablename__ = 'chapters'
    __table_args__ = (
        UniqueConstraint("project_id", "chapter_number", name="uq_chapter_number"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    chapter_number = Column(Integer, nullable=False) # 第几章，从 1 开始
    title = Column(String(200), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    summary = Column(Text, nullable=False, default="")
    prompt = Column(Text, nullable=False, default="") # 生成本章时的用户指令
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Chapter(id={self.id}, chapter_number={self.chapter_number})>"

class EmbeddingRecord(Base):
    """
    段落向量表 (sqlite 后端)
    派生数据，可随时由章节内容重建。
    """
    __tablename__ = 'embedding_records'

    id = Column(String(36), primary_key=True, default=_new_id)
    project_id = Column(String(36), nullable=False, index=True)
    chapter_id = Column(String(36), nullable=False, index=True)
    paragraph_index = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False)
    vector = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
