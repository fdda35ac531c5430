"""
分层记忆服务 (Memory Service)
为下一章生成组装完整的 Prompt：核心设定、角色、早期章节摘要、语义检索到的相关段落、
最近章节原文，再加上本章方向与写作模式。
章节生成后负责补全摘要与向量索引（后台、尽力而为）。
"""
from __future__ import annotations
import time
import logging
from concurrent.futures import ThreadPoolExecutor, Future
from typing import List

from chains import create_chapter_summary_chain, get_writing_mode
from core.schemas import MemoryStats, RegenerationResult, SearchResult
from prompts import get_prompt_template, get_prompt_text

logger = logging.getLogger(__name__)

class MemoryManager:
    def __init__(self, content_store, embedding_store, vector_service, text_generator, settings):
        self.content_store = content_store
        self.embedding_store = embedding_store
        self.vector_service = vector_service
        self.text_generator = text_generator
        self.settings = settings
        # 单线程保证章节按提交顺序补全
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="memory-enrich")

    # --- Prompt 组装 ---

    def build_prompt(self, project_id: str, user_instruction: str = "", next_chapter_number: int = None,
                     writing_mode: str = None) -> str:
        """组装下一章的生成 Prompt，只读，不调用文本生成"""
        project = self.content_store.require_project(project_id)
        characters = self.content_store.list_characters(project_id)
        chapters = self.content_store.list_chapters(project_id)

        if next_chapter_number is None:
            next_chapter_number = len(chapters) + 1
        placeholders = get_prompt_text("placeholders")
        _, mode_name, mode_instructions = get_writing_mode(
            writing_mode or self.settings.memory.default_writing_mode
        )

        retrieved_section = ""
        if user_instruction and chapters:
            try:
                relevant = self.vector_service.search_relevant(
                    project_id, user_instruction, self.settings.memory.retrieval_count
                )
                if relevant:
                    retrieved_section = self.build_retrieved_section(relevant)
            except Exception as e:
                logger.error(f"项目 {project_id} 语义检索失败，已跳过相关段落: {e}", exc_info=True)

        prompt = get_prompt_template("chapter_generation").format(
            core_settings=self.build_core_settings(project),
            characters=self.build_character_section(characters) or placeholders["no_characters"],
            summaries=self.build_summary_section(chapters) or placeholders["first_chapter"],
            retrieved_section=retrieved_section,
            recent=self.build_recent_section(chapters) or placeholders["first_chapter"],
            instruction=user_instruction or placeholders["free_direction"],
            mode_name=mode_name,
            mode_instructions=mode_instructions,
            chapter_number=next_chapter_number,
        )
        logger.info(f"项目 {project_id} 第 {next_chapter_number} 章 Prompt 已组装 ({len(prompt)} 字)")
        return prompt

    @staticmethod
    def build_core_settings(project) -> str:
        parts = []
        if project.title:
            parts.append(f"標題：{project.title}")
        if project.genre:
            parts.append(f"類型：{project.genre}")
        if project.world_setting:
            parts.append(f"\n世界觀：\n{project.world_setting}")
        if project.plot_outline:
            parts.append(f"\n主線劇情：\n{project.plot_outline}")
        return "\n".join(parts)

    @staticmethod
    def build_character_section(characters) -> str:
        blocks = []
        for character in characters:
            lines = [f"【{character.name}】"]
            if character.personality:
                lines.append(f"性格：{character.personality}")
            if character.background:
                lines.append(f"背景：{character.background}")
            if character.relationships:
                lines.append(f"關係：{character.relationships}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    def _split_recent(self, chapters):
        """拆成 (较早章节, 最近章节)"""
        recent_count = self.settings.memory.recent_chapter_count
        if recent_count <= 0:
            return list(chapters), []
        return list(chapters[:-recent_count]), list(chapters[-recent_count:])

    def build_summary_section(self, chapters) -> str:
        """除最近几章外，每章给出摘要；尚无摘要时用开头片段代替"""
        if len(chapters) <= self.settings.memory.recent_chapter_count:
            return ""
        older, _ = self._split_recent(chapters)
        return "\n\n".join(
            f"第{ch.chapter_number}章：{ch.summary or self.extract_brief(ch.content)}"
            for ch in older
        )

    def build_recent_section(self, chapters) -> str:
        """最近几章保留原文，过长时只保留结尾部分以维持衔接"""
        _, recent = self._split_recent(chapters)
        max_chars = self.settings.memory.recent_chapter_max_chars
        blocks = []
        for ch in recent:
            content = ch.content or ""
            if len(content) > max_chars:
                content = "..." + content[-max_chars:]
            blocks.append(f"【第{ch.chapter_number}章】\n{content}")
        return "\n\n---\n\n".join(blocks)

    @staticmethod
    def build_retrieved_section(relevant: List[SearchResult]) -> str:
        if not relevant:
            return ""
        passage_template = get_prompt_template("retrieved_passage")
        passages = "\n\n".join(
            passage_template.format(index=i, percent=f"{item.similarity * 100:.0f}", text=item.text)
            for i, item in enumerate(relevant, start=1)
        )
        section = get_prompt_template("retrieved_section").format(passages=passages)
        return f"\n{section}\n"

    def extract_brief(self, content: str) -> str:
        if not content:
            return get_prompt_text("placeholders")["no_content"]
        brief_chars = self.settings.memory.brief_chars
        if len(content) > brief_chars:
            return content[:brief_chars] + "..."
        return content

    # --- 章节后处理 ---

    def summarize(self, content: str) -> str:
        """调用 memory 角色模型生成章节摘要"""
        chain = create_chapter_summary_chain(
            self.text_generator.get_llm("memory"),
            max_input=self.settings.summary.max_input,
            head_ratio=self.settings.summary.head_ratio,
        )
        return (chain.invoke({"content": content}) or "").strip()

    def _is_current(self, chapter_id: str, content: str) -> bool:
        """章节仍存在且内容未被重写"""
        current = self.content_store.get_chapter(chapter_id)
        return current is not None and (current.content or "") == content

    def process_new_chapter(self, project_id: str, chapter):
        """
        生成摘要并建立向量索引。
        两步各自独立，任何错误只记录日志，不向调用方抛出。
        章节已删除或已被重写时整个任务作废，由重写后提交的任务负责。
        """
        content = chapter.content or ""
        if not self._is_current(chapter.id, content):
            logger.info(f"章节 {chapter.id} 已被删除或重写，跳过过期的记忆处理。")
            return

        if len(content) > self.settings.summary.min_length:
            try:
                summary = self.summarize(content)
                if not summary:
                    logger.warning(f"章节 {chapter.id} 摘要为空，保留原状态。")
                elif not self._is_current(chapter.id, content):
                    logger.info(f"章节 {chapter.id} 在摘要生成期间被修改，丢弃摘要。")
                    return
                else:
                    self.content_store.update_chapter(chapter.id, summary=summary)
                    logger.info(f"章节 {chapter.id} 摘要已生成 ({len(summary)} 字)")
            except Exception as e:
                logger.error(f"章节 {chapter.id} 摘要生成失败: {e}", exc_info=True)

        try:
            if not self._is_current(chapter.id, content):
                logger.warning(f"章节 {chapter.id} 已被删除或重写，跳过索引。")
                return
            self.vector_service.index_chapter(project_id, chapter.id, content)
        except Exception as e:
            logger.error(f"章节 {chapter.id} 索引失败: {e}", exc_info=True)

    def schedule_new_chapter(self, project_id: str, chapter) -> Future:
        """把章节后处理交给后台线程，立即返回 Future"""
        logger.debug(f"已提交章节 {chapter.id} 的后台记忆处理。")
        return self._executor.submit(self.process_new_chapter, project_id, chapter)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def regenerate_memory(self, project_id: str) -> RegenerationResult:
        """为项目的所有章节重新生成摘要与向量索引"""
        self.content_store.require_project(project_id)
        chapters = self.content_store.list_chapters(project_id)
        result = RegenerationResult()
        if not chapters:
            logger.warning(f"项目 {project_id} 没有章节需要处理。")
            return result

        summary_settings = self.settings.summary
        for i, chapter in enumerate(chapters):
            logger.info(f"重建记忆 {i + 1}/{len(chapters)}: 第 {chapter.chapter_number} 章")
            try:
                content = chapter.content or ""
                if len(content) > summary_settings.regenerate_min_length:
                    summary = self.summarize(content)
                    if summary:
                        self.content_store.update_chapter(chapter.id, summary=summary)
                result.indexed_records += self.vector_service.index_chapter(project_id, chapter.id, content)
                result.success_count += 1
            except Exception as e:
                logger.error(f"第 {chapter.chapter_number} 章重建记忆失败: {e}", exc_info=True)
                result.error_count += 1

            if summary_settings.regenerate_delay > 0 and i < len(chapters) - 1:
                time.sleep(summary_settings.regenerate_delay)

        logger.info(f"重建记忆完成: 成功 {result.success_count} 章，失败 {result.error_count} 章")
        return result

    # --- 统计 ---

    def get_stats(self, project_id: str) -> MemoryStats:
        chapters = self.content_store.list_chapters(project_id)
        embeddings = self.embedding_store.list_by_project(project_id)
        return MemoryStats(
            chapter_count=len(chapters),
            embedding_count=len(embeddings),
            total_chars=sum(len(ch.content or "") for ch in chapters),
            summary_count=sum(1 for ch in chapters if ch.summary),
        )
