"""
管理和提供不同LLM（大语言模型）的实例，以及对外的文本生成能力。
模型选择完全由配置字典 (steps/models) 和 provider_templates.yaml 驱动。
"""
import os
import importlib
import logging
from functools import lru_cache
from typing import Callable, Iterator

from langchain_core.output_parsers import StrOutputParser

from config.loader import load_provider_templates
from core.exceptions import ConfigurationError, LLMOperationError

logger = logging.getLogger(__name__)

# 各角色的默认温度：正文更有创造力，摘要更保守
ROLE_TEMPERATURES = {"story": 0.8, "options": 0.7, "memory": 0.3}

@lru_cache(maxsize=1)
def get_provider_templates():
    """缓存提供商模板以避免重复读取文件。"""
    return load_provider_templates()

def get_class_from_path(class_path: str):
    """根据字符串路径动态导入类。"""
    try:
        module_path, class_name = class_path.rsplit(".", 1)
        module = importlib.import_module(module_path)
        return getattr(module, class_name)
    except (ImportError, AttributeError, ValueError) as e:
        logger.error(f"无法从路径 '{class_path}' 动态导入类: {e}", exc_info=True)
        raise ConfigurationError(f"无法从路径 '{class_path}' 动态导入类: {e}")

def build_constructor_params(owner_id: str, user_config: dict, template_params: dict) -> dict:
    """
    按模板参数类型组装构造参数。
    secret_env / url_env 类型的值是环境变量名，参数名去掉 _env 后缀，
    例如 'api_key_env' -> 'api_key'。
    """
    constructor_params = {}
    for param_name, param_type in template_params.items():
        user_value = user_config.get(param_name)
        if user_value is None:
            continue
        if param_type in ("secret_env", "url_env"):
            env_var_value = os.getenv(user_value)
            if not env_var_value:
                if param_type == "url_env":
                    continue
                logger.error(f"'{owner_id}' 需要设置环境变量 '{user_value}'，但它未被设置。")
                raise ConfigurationError(f"错误: 需要为 '{owner_id}' 设置环境变量 '{user_value}'，但它未被设置。")
            constructor_params[param_name.replace("_env", "")] = env_var_value
        else:
            constructor_params[param_name] = user_value
    return constructor_params

def get_llm(alias: str, config: dict, temperature: float = None, templates: dict = None):
    """
    根据别名从配置获取并实例化一个 LangChain 聊天模型。

    Args:
        alias (str): 角色别名 ("story", "options", "memory")。
        config (dict): 合并后的配置字典。
        temperature (float): 控制模型创造力的参数，默认按角色取值。
        templates (dict): 提供商模板，默认从 provider_templates.yaml 读取。

    Returns:
        A LangChain chat model instance.
    """
    templates = templates if templates is not None else get_provider_templates()
    if temperature is None:
        temperature = ROLE_TEMPERATURES.get(alias, 0.7)

    # 1. 从角色别名找到模型ID
    model_id = (config.get("steps") or {}).get(alias)
    if not model_id:
        logger.error(f"在配置的 'steps' 部分找不到别名 '{alias}'。")
        raise ConfigurationError(f"错误: 在配置的 'steps' 部分找不到别名 '{alias}'。")

    # 2. 从模型ID找到模型的用户配置
    user_model_config = (config.get("models") or {}).get(model_id)
    if not user_model_config:
        logger.error(f"在配置的 'models' 部分找不到模型ID '{model_id}'。")
        raise ConfigurationError(f"错误: 在配置的 'models' 部分找不到模型ID '{model_id}'。")

    # 3. 找到提供商模板
    template_id = user_model_config.get("template")
    provider_template = templates.get(template_id) if template_id else None
    if not provider_template or not provider_template.get("class"):
        logger.error(f"模型 '{model_id}' 的提供商模板 '{template_id}' 无效。")
        raise ConfigurationError(f"错误: 模型 '{model_id}' 的提供商模板 '{template_id}' 无效。")

    LLMClass = get_class_from_path(provider_template["class"])

    # 4. 准备构造函数参数
    constructor_params = {"temperature": temperature}
    constructor_params.update(
        build_constructor_params(model_id, user_model_config, provider_template.get("params", {}))
    )

    logger.info(f"正在实例化模型: {model_id} (角色: {alias}, 类: {LLMClass.__name__})")

    # 5. 实例化并返回
    try:
        return LLMClass(**constructor_params)
    except Exception as e:
        logger.error(f"实例化模型 '{model_id}' 失败: {e}", exc_info=True)
        raise ConfigurationError(f"实例化模型 '{model_id}' 失败: {e}")

class TextGenerator:
    """
    文本生成能力：给定 prompt 返回完整文本，或以迭代器逐段返回。
    llm_provider 接收 (角色, 温度) 返回 LangChain 聊天模型，测试中可替换为假模型。
    """

    def __init__(self, llm_provider: Callable):
        self._llm_provider = llm_provider

    @classmethod
    def from_config(cls, config: dict) -> "TextGenerator":
        return cls(lambda role, temperature=None: get_llm(role, config, temperature))

    def get_llm(self, role: str, temperature: float = None):
        return self._llm_provider(role, temperature)

    def generate_text(self, prompt: str, role: str = "story", temperature: float = None) -> str:
        """非流式生成"""
        chain = self.get_llm(role, temperature) | StrOutputParser()
        try:
            text = chain.invoke(prompt)
        except Exception as e:
            logger.error(f"文本生成失败 [{role}]: {e}", exc_info=True)
            raise LLMOperationError(f"文本生成失败: {e}")

        if not text:
            logger.warning(f"模型返回了空文本 [{role}]。")
        logger.debug(f"生成完成 [{role}]: {len(text or '')} 字")
        return text or ""

    def stream_text(self, prompt: str, role: str = "story", temperature: float = None) -> Iterator[str]:
        """
        流式生成，逐段产出文本片段。
        调用方提前停止迭代（close）时会关闭底层流。
        """
        chain = self.get_llm(role, temperature) | StrOutputParser()
        stream = chain.stream(prompt)
        try:
            for chunk in stream:
                if chunk:
                    yield chunk
        except GeneratorExit:
            logger.info(f"流式生成被调用方中止 [{role}]。")
            raise
        except Exception as e:
            logger.error(f"流式生成失败 [{role}]: {e}", exc_info=True)
            raise LLMOperationError(f"流式生成失败: {e}")
        finally:
            close = getattr(stream, "close", None)
            if close:
                close()
