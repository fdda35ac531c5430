"""
工作流协调中心 (Workflow)
系统的 Facade 层：按配置装配各组件，并把命名步骤分发到具体的 Service。
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from config import load_environment
from config.loader import load_config
from config.settings import AppSettings
from core.exceptions import (
    ConfigurationError, LLMOperationError, NotFoundError,
    OutputParseError, StorageOperationError, VectorStoreOperationError,
)
from core.logger import setup_logging
from infra.llm.embeddings import EmbeddingGenerator, get_embedding_model
from infra.llm.factory import TextGenerator
from infra.storage.sql_db import ContentStore
from infra.storage.vector_store import create_embedding_store
from services.generation_service import GenerationService
from services.memory_service import MemoryManager
from services.project_service import ProjectService
from services.vector_service import VectorService

logger = logging.getLogger(__name__)

# 这些业务异常原样抛给调用方
TYPED_ERRORS = (
    ConfigurationError, LLMOperationError, NotFoundError,
    OutputParseError, StorageOperationError, VectorStoreOperationError, ValueError,
)

@dataclass
class Workflow:
    settings: AppSettings
    content_store: ContentStore
    embedding_store: object
    vector_service: VectorService
    memory_manager: MemoryManager
    generation_service: GenerationService
    project_service: ProjectService

def create_workflow(settings: AppSettings, content_store=None, embedding_store=None,
                    text_generator=None, embedding_generator=None, chroma_client=None) -> Workflow:
    """
    按配置装配所有组件。各能力可注入替身，未注入时从配置实例化。
    """
    content_store = content_store or ContentStore(settings.database_url)
    embedding_store = embedding_store or create_embedding_store(settings, content_store, chroma_client)
    text_generator = text_generator or TextGenerator.from_config(settings.raw)
    embedding_generator = embedding_generator or EmbeddingGenerator(
        get_embedding_model(settings.raw), max_chars=settings.indexing.embedding_max_chars
    )

    vector_service = VectorService(embedding_store, embedding_generator, settings)
    memory_manager = MemoryManager(content_store, embedding_store, vector_service, text_generator, settings)
    logger.info(f"工作流已装配 (向量后端: {settings.vector_store.backend})")

    project_service = ProjectService(content_store, embedding_store)
    return Workflow(
        settings=settings,
        content_store=content_store,
        embedding_store=embedding_store,
        vector_service=vector_service,
        memory_manager=memory_manager,
        generation_service=GenerationService(content_store, memory_manager, text_generator, settings, project_service),
        project_service=project_service,
    )

def bootstrap(config_path: str = None, user_config_path: str = None, dotenv_path: str = None,
              log_file: str = None) -> Workflow:
    """
    应用启动入口：加载 .env，初始化日志，读取配置文件，再装配工作流。
    """
    load_environment(dotenv_path)
    setup_logging(log_file)
    settings = AppSettings.from_config(load_config(config_path, user_config_path))
    return create_workflow(settings)


def run_step(workflow: Workflow, step_name: str, **kwargs):
    """
    业务逻辑统一入口点。

    Args:
        workflow: create_workflow 返回的组件集合
        step_name: 步骤名称
        **kwargs: 传给具体步骤的参数
    """
    steps = {
        "build_prompt": workflow.memory_manager.build_prompt,
        "process_new_chapter": workflow.memory_manager.process_new_chapter,
        "regenerate_memory": workflow.memory_manager.regenerate_memory,
        "get_stats": workflow.memory_manager.get_stats,
        "index_chapter": workflow.vector_service.index_chapter,
        "search_relevant": workflow.vector_service.search_relevant,
        "stream_chapter": workflow.generation_service.stream_chapter,
        "generate_chapter": workflow.generation_service.generate_chapter,
        "generate_story_options": workflow.generation_service.generate_story_options,
        "create_project": workflow.project_service.create_project,
        "update_project": workflow.project_service.update_project,
        "save_characters": workflow.project_service.save_characters,
        "delete_project": workflow.project_service.delete_project,
        "delete_chapter": workflow.project_service.delete_chapter,
        "rewrite_chapter": workflow.project_service.rewrite_chapter,
    }

    handler = steps.get(step_name)
    if handler is None:
        raise ValueError(f"未知的步骤名称: {step_name}")

    logger.info(f"路由请求: {step_name}")
    try:
        return handler(**kwargs)
    except TYPED_ERRORS:
        raise
    except Exception as e:
        logger.error(f"执行 {step_name} 失败: {e}", exc_info=True)
        raise LLMOperationError(f"业务执行失败: {e}")
