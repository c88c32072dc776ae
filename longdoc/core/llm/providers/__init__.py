"""
LLM Transport Implementations

Providers:
    - openai: OpenAI-compatible chat completions APIs
"""

from .openai import OpenAICompatibleTranslator

__all__ = ['OpenAICompatibleTranslator']
