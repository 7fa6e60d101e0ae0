"""
Summarization: AI backends, failover, prompts and response recovery.
"""

from .providers import (
    CompletionBackend, CompletionRequest, ProviderCallResult,
    OpenAICompatibleBackend, ClaudeBackend
)
from .gateway import ProviderGateway
from .response_parser import ResponseRecovery, render_sections
from .prompt_builder import PromptBuilder, SummarizationPrompt
from .language import detect_language
from .engine import SummarizationEngine

__all__ = [
    'CompletionBackend',
    'CompletionRequest',
    'ProviderCallResult',
    'OpenAICompatibleBackend',
    'ClaudeBackend',
    'ProviderGateway',
    'ResponseRecovery',
    'render_sections',
    'PromptBuilder',
    'SummarizationPrompt',
    'detect_language',
    'SummarizationEngine',
]
