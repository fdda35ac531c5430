"""
SQLite 数据库管理器 (Content Store)
负责项目、角色、章节的持久化：增、查、合并式更新、删除，以及按项目的二级索引查询。
"""
import os
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import create_engine, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from core.models import Base, Project, Character, Chapter, EmbeddingRecord
from core.exceptions import NotFoundError, StorageOperationError

logger = logging.getLogger(__name__)

PROJECT_FIELDS = ("title", "genre", "world_setting", "plot_outline")
CHARACTER_FIELDS = ("name", "personality", "background", "relationships")
CHAPTER_FIELDS = ("title", "content", "summary", "prompt", "chapter_number")

def create_db_engine(database_url: str):
    """
    创建数据库引擎并自动建表。
    内存数据库使用 StaticPool，保证后台线程与主线程看到同一个连接。
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        if database_url.startswith("sqlite:///"):
            db_path = database_url[len("sqlite:///"):]
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        engine = create_engine(database_url, connect_args={"check_same_thread": False})

    Base.metadata.create_all(engine)
    return engine

class ContentStore:
    """
    内容数据库的统一访问入口。
    返回的 ORM 对象在会话关闭后仍可读取（expire_on_commit=False）。
    """

    def __init__(self, database_url: str = "sqlite://", engine=None):
        self.engine = engine or create_db_engine(database_url)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def get_session(self) -> Session:
        """获取一个新的数据库会话"""
        return self._session_factory()

    @staticmethod
    def _touch_project(session: Session, project_id: str):
        project = session.get(Project, project_id)
        if project:
            project.updated_at = datetime.now()

    # --- 项目 ---

    def create_project(self, title: str, genre: str = "", world_setting: str = "", plot_outline: str = "") -> Project:
        session = self.get_session()
        try:
            now = datetime.now()
            project = Project(
                title=title, genre=genre, world_setting=world_setting,
                plot_outline=plot_outline, created_at=now, updated_at=now,
            )
            session.add(project)
            session.commit()
            logger.info(f"项目已创建: {project.id} ({title})")
            return project
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"创建项目失败: {e}")
            raise StorageOperationError(f"创建项目失败: {e}")
        finally:
            session.close()

    def get_project(self, project_id: str) -> Optional[Project]:
        session = self.get_session()
        try:
            return session.get(Project, project_id)
        finally:
            session.close()

    def require_project(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"找不到项目: {project_id}")
        return project

    def list_projects(self) -> List[Project]:
        """按最近更新时间倒序列出所有项目"""
        session = self.get_session()
        try:
            return session.query(Project).order_by(Project.updated_at.desc()).all()
        finally:
            session.close()

    def update_project(self, project_id: str, **fields) -> Project:
        """合并式更新项目字段，并刷新 updated_at"""
        session = self.get_session()
        try:
            project = session.get(Project, project_id)
            if project is None:
                raise NotFoundError(f"找不到项目: {project_id}")
            for key, value in fields.items():
                if key in PROJECT_FIELDS and value is not None:
                    setattr(project, key, value)
            project.updated_at = datetime.now()
            session.commit()
            return project
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"更新项目失败 {project_id}: {e}")
            raise StorageOperationError(f"更新项目失败: {e}")
        finally:
            session.close()

    def delete_project(self, project_id: str):
        """删除项目及其全部角色、章节和 sqlite 中的向量记录"""
        session = self.get_session()
        try:
            session.query(EmbeddingRecord).filter_by(project_id=project_id).delete()
            session.query(Chapter).filter_by(project_id=project_id).delete()
            session.query(Character).filter_by(project_id=project_id).delete()
            deleted = session.query(Project).filter_by(id=project_id).delete()
            session.commit()
            if deleted:
                logger.info(f"项目已删除: {project_id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"删除项目失败 {project_id}: {e}")
            raise StorageOperationError(f"删除项目失败: {e}")
        finally:
            session.close()

    # --- 角色 ---

    def create_character(self, project_id: str, name: str, personality: str = "",
                         background: str = "", relationships: str = "") -> Character:
        session = self.get_session()
        try:
            if session.get(Project, project_id) is None:
                raise NotFoundError(f"找不到项目: {project_id}")
            character = Character(
                project_id=project_id, name=name, personality=personality,
                background=background, relationships=relationships,
            )
            session.add(character)
            self._touch_project(session, project_id)
            session.commit()
            return character
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"创建角色失败: {e}")
            raise StorageOperationError(f"创建角色失败: {e}")
        finally:
            session.close()

    def get_character(self, character_id: str) -> Optional[Character]:
        session = self.get_session()
        try:
            return session.get(Character, character_id)
        finally:
            session.close()

    def list_characters(self, project_id: str) -> List[Character]:
        session = self.get_session()
        try:
            return (
                session.query(Character)
                .filter_by(project_id=project_id)
                .order_by(Character.created_at, Character.id)
                .all()
            )
        finally:
            session.close()

    def update_character(self, character_id: str, **fields) -> Character:
        session = self.get_session()
        try:
            character = session.get(Character, character_id)
            if character is None:
                raise NotFoundError(f"找不到角色: {character_id}")
            for key, value in fields.items():
                if key in CHARACTER_FIELDS and value is not None:
                    setattr(character, key, value)
            self._touch_project(session, character.project_id)
            session.commit()
            return character
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"更新角色失败 {character_id}: {e}")
            raise StorageOperationError(f"更新角色失败: {e}")
        finally:
            session.close()

    def delete_character(self, character_id: str):
        session = self.get_session()
        try:
            character = session.get(Character, character_id)
            if character is None:
                return
            self._touch_project(session, character.project_id)
            session.delete(character)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"删除角色失败 {character_id}: {e}")
            raise StorageOperationError(f"删除角色失败: {e}")
        finally:
            session.close()

    # --- 章节 ---

    def count_chapters(self, project_id: str) -> int:
        session = self.get_session()
        try:
            return session.query(func.count(Chapter.id)).filter_by(project_id=project_id).scalar() or 0
        finally:
            session.close()

    def create_chapter(self, project_id: str, content: str, prompt: str = "", title: str = None,
                       chapter_number: int = None, summary: str = "") -> Chapter:
        """
        创建章节。未指定序号时取"现有章节数 + 1"。
        章节写入与项目时间戳刷新在同一个事务中完成。
        """
        session = self.get_session()
        try:
            if session.get(Project, project_id) is None:
                raise NotFoundError(f"找不到项目: {project_id}")
            if chapter_number is None:
                existing = session.query(func.count(Chapter.id)).filter_by(project_id=project_id).scalar() or 0
                chapter_number = existing + 1
            chapter = Chapter(
                project_id=project_id,
                chapter_number=chapter_number,
                title=title or f"第{chapter_number}章",
                content=content or "",
                summary=summary or "",
                prompt=prompt or "",
                created_at=datetime.now(),
            )
            session.add(chapter)
            self._touch_project(session, project_id)
            session.commit()
            logger.info(f"章节已创建: 项目 {project_id} 第 {chapter_number} 章")
            return chapter
        except IntegrityError as e:
            session.rollback()
            logger.error(f"章节序号冲突: 项目 {project_id} 第 {chapter_number} 章")
            raise StorageOperationError(f"第 {chapter_number} 章已存在: {e.orig}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"创建章节失败: {e}")
            raise StorageOperationError(f"创建章节失败: {e}")
        finally:
            session.close()

    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        session = self.get_session()
        try:
            return session.get(Chapter, chapter_id)
        finally:
            session.close()

    def list_chapters(self, project_id: str) -> List[Chapter]:
        """获取项目的所有章节，按章节序号升序排列"""
        session = self.get_session()
        try:
            return (
                session.query(Chapter)
                .filter_by(project_id=project_id)
                .order_by(Chapter.chapter_number)
                .all()
            )
        finally:
            session.close()

    def update_chapter(self, chapter_id: str, **fields) -> Chapter:
        """合并式更新章节字段，同时刷新所属项目的 updated_at"""
        session = self.get_session()
        try:
            chapter = session.get(Chapter, chapter_id)
            if chapter is None:
                raise NotFoundError(f"找不到章节: {chapter_id}")
            for key, value in fields.items():
                if key in CHAPTER_FIELDS and value is not None:
                    setattr(chapter, key, value)
            self._touch_project(session, chapter.project_id)
            session.commit()
            return chapter
        except IntegrityError as e:
            session.rollback()
            raise StorageOperationError(f"章节序号冲突: {e.orig}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"更新章节失败 {chapter_id}: {e}")
            raise StorageOperationError(f"更新章节失败: {e}")
        finally:
            session.close()

    def delete_chapter(self, chapter_id: str):
        """删除章节（向量记录由调用方通过向量存储清理）"""
        session = self.get_session()
        try:
            chapter = session.get(Chapter, chapter_id)
            if chapter is None:
                return
            self._touch_project(session, chapter.project_id)
            session.delete(chapter)
            session.commit()
            logger.info(f"章节已删除: {chapter_id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"删除章节失败 {chapter_id}: {e}")
            raise StorageOperationError(f"删除章节失败: {e}")
        finally:
            session.close()
