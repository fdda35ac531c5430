"""
Prompt Manager
动态加载并管理 config/prompts.yaml 中的所有 Prompt 模板。
支持运行时热重载。
"""
import yaml
import os
import logging
from langchain_core.prompts import PromptTemplate

logger = logging.getLogger(__name__)

PROMPTS_PATH = os.getenv(
    "NOVEL_PROMPTS_PATH",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "prompts.yaml"),
)

# --- 热重载缓存层 ---
class PromptCache:
    def __init__(self, path: str = PROMPTS_PATH):
        self.path = path
        self._cache = {}
        self._last_modified_time = 0

    def get_prompts(self) -> dict:
        """获取 Prompts，如果文件被修改则重新加载。"""
        try:
            current_mtime = os.path.getmtime(self.path)
            if current_mtime > self._last_modified_time:
                logger.info("检测到 prompts.yaml 文件变更，正在热重载...")
                with open(self.path, 'r', encoding='utf-8') as f:
                    self._cache = yaml.safe_load(f) or {}
                self._last_modified_time = current_mtime
                logger.info("热重载完成！")
        except FileNotFoundError:
            logger.error(f"未找到 Prompts 文件: {self.path}")
            self._cache = {}
        except yaml.YAMLError as e:
            # 保留旧缓存，等待文件修正
            logger.error(f"加载或重载 Prompts 失败: {e}")

        return self._cache

# 全局缓存实例
_prompt_cache = PromptCache()


def get_prompt_text(prompt_key: str):
    """
    获取 prompts.yaml 中某个键的原始值（字符串、列表或字典）。
    """
    prompts = _prompt_cache.get_prompts()
    if prompt_key not in prompts:
        raise ValueError(f"Prompt key '{prompt_key}' not found in {_prompt_cache.path}")
    return prompts[prompt_key]


def get_prompt_template(prompt_key: str) -> PromptTemplate:
    """
    根据 Key 获取一个 LangChain PromptTemplate 对象 (支持热重载)。

    Args:
        prompt_key (str): 在 prompts.yaml 中定义的键。

    Returns:
        PromptTemplate: LangChain 模板对象。
    """
    template_str = get_prompt_text(prompt_key)
    if not isinstance(template_str, str) or not template_str:
        raise ValueError(f"Prompt key '{prompt_key}' is not a template string")

    return PromptTemplate.from_template(template_str)
