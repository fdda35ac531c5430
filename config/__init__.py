from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

def load_environment(dotenv_path: str = None):
    """
    从.env文件加载环境变量到环境中。
    API Key 等敏感信息只通过环境变量传入，配置文件中只记录变量名。
    """
    load_dotenv(dotenv_path)
    logger.debug("环境变量已从 .env 文件加载。")
