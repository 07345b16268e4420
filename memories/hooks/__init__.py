"""Post-commit hook pipeline and its strategies."""

from .base import CommitStrategy
from .extract import ExtractStrategy, extract_summary
from .pipeline import HOOK_MARKER, HookPipeline, hook_script, is_managed_hook
from .script import ScriptStrategy
from .summarize import SummarizeStrategy

__all__ = [
    "HOOK_MARKER",
    "CommitStrategy",
    "ExtractStrategy",
    "HookPipeline",
    "ScriptStrategy",
    "SummarizeStrategy",
    "extract_summary",
    "hook_script",
    "is_managed_hook",
]
