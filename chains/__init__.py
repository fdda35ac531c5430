from chains.base import get_writing_mode
from chains.memory import (
    create_chapter_summary_chain, create_story_options_chain, truncate_for_summary
)
