"""
Chunking module for Markdown documents.

Splits long documents into ordered, token-bounded chunks.
"""
from longdoc.core.chunking.models import Chunk, join_chunks
from longdoc.core.chunking.token_estimator import estimate_token_count, get_token_counter, TiktokenCounter
from longdoc.core.chunking.markdown_chunker import MarkdownChunker, split_markdown_into_chunks

__all__ = [
    'Chunk',
    'join_chunks',
    'estimate_token_count',
    'TiktokenCounter',
    'get_token_counter',
    'MarkdownChunker',
    'split_markdown_into_chunks',
]
