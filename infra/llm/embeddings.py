"""
Embedding Provider
负责根据配置动态创建 LangChain 的 Embedding 模型实例，并对外提供向量生成能力。
"""
import logging
from typing import List

from core.exceptions import ConfigurationError, LLMOperationError
from infra.llm.factory import get_provider_templates, get_class_from_path, build_constructor_params

logger = logging.getLogger(__name__)

def get_embedding_model(config: dict, templates: dict = None):
    """
    根据配置中的 'active_embedding_model' 获取并实例化一个Embedding模型。
    """
    templates = templates if templates is not None else get_provider_templates()
    embedding_templates = templates.get("embeddings", {})

    # 1. 获取当前激活的Embedding模型ID
    active_model_id = config.get("active_embedding_model")
    if not active_model_id:
        logger.error("在配置中未指定 'active_embedding_model'。")
        raise ConfigurationError("错误: 在配置中未指定 'active_embedding_model'。")

    # 2. 找到模型的用户配置
    user_model_config = (config.get("embeddings") or {}).get(active_model_id)
    if not user_model_config:
        logger.error(f"在配置的 'embeddings' 部分找不到模型ID '{active_model_id}'。")
        raise ConfigurationError(f"错误: 在配置的 'embeddings' 部分找不到模型ID '{active_model_id}'。")

    # 3. 找到模板并动态导入类
    template_id = user_model_config.get("template")
    provider_template = embedding_templates.get(template_id) if template_id else None
    if not provider_template or not provider_template.get("class"):
        logger.error(f"Embedding模型 '{active_model_id}' 的模板 '{template_id}' 无效。")
        raise ConfigurationError(f"错误: Embedding模型 '{active_model_id}' 的模板 '{template_id}' 无效。")

    EmbeddingClass = get_class_from_path(provider_template["class"])
    constructor_params = build_constructor_params(
        active_model_id, user_model_config, provider_template.get("params", {})
    )

    logger.info(f"正在实例化Embedding模型: {active_model_id} (类: {EmbeddingClass.__name__})")

    try:
        return EmbeddingClass(**constructor_params)
    except Exception as e:
        logger.error(f"实例化Embedding模型 '{active_model_id}' 失败: {e}", exc_info=True)
        raise ConfigurationError(f"实例化Embedding模型 '{active_model_id}' 失败: {e}")

class EmbeddingGenerator:
    """向量生成能力：输入文本先截断到 max_chars，再交给 Embedding 模型。"""

    def __init__(self, embeddings, max_chars: int = 2000):
        self.embeddings = embeddings
        self.max_chars = max_chars

    def generate_embedding(self, text: str) -> List[float]:
        truncated = (text or "")[:self.max_chars]
        try:
            vector = self.embeddings.embed_query(truncated)
        except Exception as e:
            logger.error(f"生成向量失败: {e}", exc_info=True)
            raise LLMOperationError(f"生成向量失败: {e}")
        return [float(v) for v in (vector or [])]
