from .assembler import MAX_EMOJIS, ContextAssembler, apply_clear_command
from .budget import BudgetSelection, select_newest_within_budget
from .prompt_cache import PromptCache, load_system_prompt

__all__ = [
    "MAX_EMOJIS",
    "BudgetSelection",
    "ContextAssembler",
    "PromptCache",
    "apply_clear_command",
    "load_system_prompt",
    "select_newest_within_budget",
]
