"""
配置加载器 (Config Loader)
负责读取 config.yaml、user_config.yaml 与 provider_templates.yaml，并合并为一个配置字典。
"""
import os
import copy
import logging
import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))

CONFIG_PATH = os.getenv("NOVEL_CONFIG_PATH", os.path.join(CONFIG_DIR, "config.yaml"))
USER_CONFIG_PATH = os.getenv("NOVEL_USER_CONFIG_PATH", "user_config.yaml")
PROVIDER_TEMPLATES_PATH = os.getenv(
    "NOVEL_PROVIDER_TEMPLATES_PATH", os.path.join(CONFIG_DIR, "provider_templates.yaml")
)

# 这些分区是字典，用户配置按键合并而不是整体覆盖
MERGEABLE_SECTIONS = (
    "models", "steps", "embeddings", "memory", "indexing",
    "summary", "options", "vector_store",
)

def _merge_configs(base_config: dict, user_config: dict) -> dict:
    """
    合并基础配置和用户配置。
    字典分区按键合并，其余标量项由用户配置直接覆盖。
    """
    merged_config = copy.deepcopy(base_config)

    for key, value in user_config.items():
        if key in MERGEABLE_SECTIONS and isinstance(value, dict):
            merged_config[key] = merged_config.get(key) or {}
            merged_config[key].update(value)
        else:
            merged_config[key] = value

    return merged_config

def _load_yaml(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if data else {}
    except yaml.YAMLError as e:
        logger.error(f"解析 {path} 文件失败: {e}", exc_info=True)
        raise ValueError(f"错误: 解析 {path} 文件失败: {e}")

def load_user_config(path: str = None) -> dict:
    """
    加载并解析 user_config.yaml 文件。文件不存在时返回空字典。
    """
    path = path or USER_CONFIG_PATH
    if not os.path.exists(path):
        return {}
    return _load_yaml(path)

def load_config(path: str = None, user_path: str = None) -> dict:
    """
    加载并解析 config.yaml 和 user_config.yaml 文件，并进行合并。
    """
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        logger.warning(f"配置文件 {path} 未找到，返回默认空配置。")
        base_config = {"models": {}, "steps": {}}
    else:
        base_config = _load_yaml(path)

    return _merge_configs(base_config, load_user_config(user_path))

def load_provider_templates(path: str = None) -> dict:
    """
    加载并解析 provider_templates.yaml 文件。
    """
    path = path or PROVIDER_TEMPLATES_PATH
    if not os.path.exists(path):
        logger.warning(f"提供商模板文件 {path} 未找到，返回空模板。")
        return {}
    return _load_yaml(path)
