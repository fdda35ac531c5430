"""
章节生成服务 (Generation Service)
负责下一章的流式/非流式生成、章节写入（新建或重写），以及下一章剧情选项。
"""
from __future__ import annotations
import re
import json
import time
import logging
from typing import Iterator, List, Optional

from chains import create_story_options_chain
from core.exceptions import LLMOperationError, NotFoundError, OutputParseError
from prompts import get_prompt_text

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

def get_default_options() -> List[str]:
    return list(get_prompt_text("default_options"))

def is_default_options(options: List[str]) -> bool:
    """判断选项是否为解析失败后的预设选项"""
    options = list(options)
    return bool(options) and options == pad_options(get_default_options(), len(options))

def _valid_options(parsed) -> List[str]:
    if not isinstance(parsed, list):
        return []
    return [opt.strip() for opt in parsed if isinstance(opt, str) and opt.strip()]

def parse_options(response: str) -> List[str]:
    """
    解析模型返回的选项 JSON 数组。
    先严格解析整个回复；失败后去掉代码块标记，再取第一个完整的 JSON 数组。
    得不到非空字符串选项时抛出 OutputParseError。
    """
    text = (response or "").strip()
    try:
        options = _valid_options(json.loads(text))
        if options:
            return options
    except json.JSONDecodeError:
        pass

    cleaned = CODE_FENCE.sub("", text)
    position = cleaned.find("[")
    if position != -1:
        try:
            parsed, _ = json.JSONDecoder().raw_decode(cleaned, position)
            options = _valid_options(parsed)
            if options:
                return options
        except json.JSONDecodeError:
            pass

    raise OutputParseError(f"无法从回复中解析出选项数组: {text[:200]}")

def pad_options(options: List[str], count: int) -> List[str]:
    """不足 count 个时按位置用预设选项补齐，超过则截断"""
    defaults = get_default_options()
    padded = list(options[:count])
    while len(padded) < count:
        padded.append(defaults[len(padded) % len(defaults)])
    return padded

class ChapterStream:
    """
    章节流式生成的迭代器。
    完整迭代结束后才写入章节并提交后台记忆处理；中途 close() 则丢弃，不写入任何内容。
    """

    def __init__(self, fragments: Iterator[str], on_complete):
        self._fragments = fragments
        self._on_complete = on_complete
        self._parts: List[str] = []
        self.chapter = None
        self.closed = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __iter__(self):
        if self.closed:
            return
        try:
            for fragment in self._fragments:
                self._parts.append(fragment)
                yield fragment
        except GeneratorExit:
            # 调用方提前停止迭代
            self.close()
            raise
        except Exception:
            self.closed = True
            raise
        self.closed = True
        self.chapter = self._on_complete(self.text)

    def close(self):
        if self.closed:
            return
        self.closed = True
        close = getattr(self._fragments, "close", None)
        if close:
            close()
        logger.info(f"章节生成已中止，丢弃 {len(self.text)} 字。")

class GenerationService:
    def __init__(self, content_store, memory_manager, text_generator, settings, project_service):
        self.content_store = content_store
        self.project_service = project_service
        self.memory_manager = memory_manager
        self.text_generator = text_generator
        self.settings = settings

    def _resolve_target(self, project_id: str, instruction: str, rewrite_chapter_id: Optional[str]):
        """返回 (章节序号, 实际使用的指令, 被重写的章节)"""
        self.content_store.require_project(project_id)
        if rewrite_chapter_id:
            chapter = self.content_store.get_chapter(rewrite_chapter_id)
            if chapter is None or chapter.project_id != project_id:
                raise NotFoundError(f"找不到章节: {rewrite_chapter_id}")
            # 重写时未给出新指令则沿用原指令
            return chapter.chapter_number, instruction or chapter.prompt, chapter
        return self.content_store.count_chapters(project_id) + 1, instruction, None

    def _save_chapter(self, project_id: str, chapter_number: int, instruction: str, content: str, rewriting=None):
        if rewriting is not None:
            chapter = self.project_service.rewrite_chapter(rewriting.id, content, prompt=instruction or "")
            logger.info(f"第 {chapter_number} 章重写完成 ({len(content)} 字)")
        else:
            chapter = self.content_store.create_chapter(
                project_id, content=content, prompt=instruction or "", chapter_number=chapter_number
            )
            logger.info(f"第 {chapter_number} 章生成完成 ({len(content)} 字)")

        self.memory_manager.schedule_new_chapter(project_id, chapter)
        return chapter

    def stream_chapter(self, project_id: str, instruction: str = "", writing_mode: str = None,
                       rewrite_chapter_id: str = None) -> ChapterStream:
        """流式生成下一章（或重写指定章节）"""
        chapter_number, instruction, rewriting = self._resolve_target(project_id, instruction, rewrite_chapter_id)
        prompt = self.memory_manager.build_prompt(project_id, instruction, chapter_number, writing_mode)
        fragments = self.text_generator.stream_text(prompt, role="story")
        return ChapterStream(
            fragments,
            lambda content: self._save_chapter(project_id, chapter_number, instruction, content, rewriting),
        )

    def generate_chapter(self, project_id: str, instruction: str = "", writing_mode: str = None,
                         rewrite_chapter_id: str = None):
        """非流式生成下一章，返回写入后的章节"""
        chapter_number, instruction, rewriting = self._resolve_target(project_id, instruction, rewrite_chapter_id)
        prompt = self.memory_manager.build_prompt(project_id, instruction, chapter_number, writing_mode)
        content = self.text_generator.generate_text(prompt, role="story")
        if not content.strip():
            raise LLMOperationError(f"第 {chapter_number} 章生成结果为空。")
        return self._save_chapter(project_id, chapter_number, instruction, content, rewriting)

    def generate_story_options(self, project_id: str, chapter_content: str) -> List[str]:
        """
        生成下一章的剧情走向选项，总是返回 options.count 个。
        解析失败或调用失败时按配置重试，最终回退到预设选项。
        """
        project = self.content_store.require_project(project_id)
        characters = self.content_store.list_characters(project_id)
        options_settings = self.settings.options

        chain = create_story_options_chain(
            self.text_generator.get_llm("options"),
            count=options_settings.count,
            context_chars=options_settings.context_chars,
        )
        inputs = {
            "chapter_content": chapter_content or "",
            "world_setting": project.world_setting,
            "plot_outline": project.plot_outline,
            "character_names": [c.name for c in characters],
        }

        attempts = options_settings.max_retries + 1
        for attempt in range(attempts):
            try:
                response = chain.invoke(inputs)
                options = parse_options(response)
                logger.info(f"剧情选项解析成功 (第 {attempt + 1} 次尝试): {len(options)} 个")
                return pad_options(options, options_settings.count)
            except OutputParseError as e:
                logger.warning(f"剧情选项解析失败 ({attempt + 1}/{attempts}): {e}")
                delay = options_settings.retry_delay
            except Exception as e:
                logger.error(f"剧情选项生成失败 ({attempt + 1}/{attempts}): {e}", exc_info=True)
                # 接口错误多等一会儿
                delay = options_settings.retry_delay + 0.5

            if attempt < attempts - 1 and delay > 0:
                time.sleep(delay)

        logger.warning("剧情选项多次失败，使用预设选项。")
        return pad_options(get_default_options(), options_settings.count)
