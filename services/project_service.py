"""
项目管理服务 (Project Service)
项目、角色名单与章节的生命周期操作，保证删除时不留下孤立的章节与向量记录。
"""
from __future__ import annotations
import logging
from typing import List

from core.exceptions import NotFoundError
from core.schemas import CharacterDraft

logger = logging.getLogger(__name__)

class ProjectService:
    def __init__(self, content_store, embedding_store):
        self.content_store = content_store
        self.embedding_store = embedding_store

    def create_project(self, title: str, genre: str = "", world_setting: str = "", plot_outline: str = "",
                       characters: List[CharacterDraft] = None):
        """创建项目，可同时保存角色名单"""
        title = (title or "").strip()
        if not title:
            raise ValueError("小说标题不能为空。")
        project = self.content_store.create_project(
            title=title, genre=genre or "", world_setting=(world_setting or "").strip(),
            plot_outline=(plot_outline or "").strip(),
        )
        if characters:
            self.save_characters(project.id, characters)
        return project

    def update_project(self, project_id: str, characters: List[CharacterDraft] = None, **fields):
        project = self.content_store.update_project(project_id, **fields)
        if characters is not None:
            self.save_characters(project_id, characters)
        return project

    def save_characters(self, project_id: str, drafts: List[CharacterDraft]):
        """
        整体保存角色名单：已有 id 的更新，没有 id 的新建，名单外的旧角色删除。
        """
        self.content_store.require_project(project_id)
        existing = {c.id: c for c in self.content_store.list_characters(project_id)}
        kept_ids = set()

        for draft in drafts:
            fields = dict(
                name=draft.name, personality=draft.personality,
                background=draft.background, relationships=draft.relationships,
            )
            if draft.id and draft.id in existing:
                self.content_store.update_character(draft.id, **fields)
                kept_ids.add(draft.id)
            else:
                character = self.content_store.create_character(project_id, **fields)
                kept_ids.add(character.id)

        for character_id in set(existing) - kept_ids:
            self.content_store.delete_character(character_id)

        logger.info(f"项目 {project_id} 角色名单已保存: {len(kept_ids)} 个角色")
        return self.content_store.list_characters(project_id)

    def delete_project(self, project_id: str):
        """删除项目及其角色、章节和全部向量记录"""
        self.content_store.require_project(project_id)
        removed = self.embedding_store.delete_by_project(project_id)
        self.content_store.delete_project(project_id)
        logger.info(f"项目 {project_id} 已删除（清除 {removed} 条向量记录）")

    def delete_chapter(self, chapter_id: str):
        """删除章节及其向量记录"""
        chapter = self.content_store.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(f"找不到章节: {chapter_id}")
        self.embedding_store.delete_by_chapter(chapter_id)
        self.content_store.delete_chapter(chapter_id)

    def rewrite_chapter(self, chapter_id: str, content: str, prompt: str = None):
        """
        用新内容替换章节：保留章节序号，清空摘要并删除旧向量记录。
        未给出 prompt 时保留原指令。
        """
        chapter = self.content_store.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(f"找不到章节: {chapter_id}")
        self.embedding_store.delete_by_chapter(chapter_id)
        return self.content_store.update_chapter(
            chapter_id, content=content or "", prompt=prompt if prompt is not None else chapter.prompt,
            summary="",
        )
