"""
Core translation modules
"""
from .translator import DocumentTranslator, TranslationOutcome, translate_long_document

__all__ = [
    'DocumentTranslator',
    'TranslationOutcome',
    'translate_long_document',
]
