"""
自定义异常类
用于在应用的不同层之间传递具有明确语义的错误信息。
"""

class NotFoundError(Exception):
    """引用的项目、章节或角色不存在"""
    pass

class LLMOperationError(Exception):
    """当与大语言模型（文本生成或向量生成）交互时发生错误"""
    pass

class OutputParseError(Exception):
    """模型的结构化输出（如剧情选项列表）无法解析"""
    pass

class VectorStoreOperationError(Exception):
    """当与向量记录存储交互时发生错误"""
    pass

class StorageOperationError(Exception):
    """当写入内容数据库失败时发生错误（例如章节序号冲突）"""
    pass

class ConfigurationError(Exception):
    """当应用配置不正确或缺失时发生错误"""
    pass
