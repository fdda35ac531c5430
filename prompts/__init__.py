from prompts.manager import get_prompt_template, get_prompt_text
