import logging
from typing import Tuple

from prompts import get_prompt_text

logger = logging.getLogger(__name__)

DEFAULT_WRITING_MODE = "balanced"

def get_writing_mode(writing_mode: str) -> Tuple[str, str, str]:
    """
    统一解析写作模式，返回 (模式ID, 显示名称, 模式说明)。
    未知模式回退到 balanced。
    """
    modes = get_prompt_text("writing_modes")
    mode_id = writing_mode if writing_mode in modes else DEFAULT_WRITING_MODE
    if writing_mode and mode_id != writing_mode:
        logger.warning(f"未知的写作模式 '{writing_mode}'，已回退到 {DEFAULT_WRITING_MODE}。")
    mode = modes[mode_id]
    return mode_id, mode["name"], mode["instructions"]
