"""
LLM transport layer.
"""

from .base import BackendConfig, LLMTranslator
from .providers.openai import OpenAICompatibleTranslator

__all__ = ['BackendConfig', 'LLMTranslator', 'OpenAICompatibleTranslator']
