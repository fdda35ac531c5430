"""
记忆相关的处理链 (Memory Chains)
章节摘要与下一章剧情选项。
"""
from langchain_core.runnables import RunnablePassthrough
from langchain_core.output_parsers import StrOutputParser
from prompts import get_prompt_template, get_prompt_text

def truncate_for_summary(content: str, max_input: int = 4000, head_ratio: float = 0.4) -> str:
    """
    超长章节只保留开头与结尾，中间以省略标记替代。
    """
    if len(content) <= max_input:
        return content
    head_length = int(max_input * head_ratio)
    tail_length = int(max_input * (1 - head_ratio))
    return content[:head_length] + get_prompt_text("summary_elision") + content[-tail_length:]

def create_chapter_summary_chain(llm, max_input: int = 4000, head_ratio: float = 0.4):
    """创建章节摘要链，输入 {"content": 章节正文}"""
    prompt = get_prompt_template("chapter_summary")
    return (
        RunnablePassthrough.assign(
            content=lambda x: truncate_for_summary(x.get("content", ""), max_input, head_ratio)
        )
        | prompt | llm | StrOutputParser()
    )

def create_story_options_chain(llm, count: int = 4, context_chars: int = 800):
    """创建剧情选项链，输出模型原始回复，由调用方解析 JSON"""
    prompt = get_prompt_template("story_options")
    none_text = get_prompt_text("placeholders")["none"]
    return (
        RunnablePassthrough.assign(
            count=lambda x: count,
            world_setting=lambda x: x.get("world_setting") or none_text,
            plot_outline=lambda x: x.get("plot_outline") or none_text,
            character_names=lambda x: "、".join(x.get("character_names") or []) or none_text,
            chapter_tail=lambda x: (x.get("chapter_content") or "")[-context_chars:],
        )
        | prompt | llm | StrOutputParser()
    )
