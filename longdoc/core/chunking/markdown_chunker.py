"""
Markdown-aware chunking with token bounds.

Splits a long Markdown document into ordered chunks that stay under a token
limit while keeping code blocks and level 1/2 sections together. A second
pass re-splits oversized chunks on blank-line paragraph boundaries; a single
paragraph that alone exceeds the limit is kept intact and only logged.
"""
import logging
import re
from typing import Callable, List, Optional, Tuple

from longdoc.config import (
    TOKEN_LIMIT_TOLERANCE,
    MIN_SPLIT_RATIO,
    HEADING_SPLIT_RATIO,
)
from longdoc.core.adapters.exceptions import SegmentationOverflowError
from longdoc.core.chunking.models import Chunk
from longdoc.core.chunking.token_estimator import estimate_token_count

logger = logging.getLogger(__name__)

HEADING_REGEX = re.compile(r'^(#+)\s+.*')
CODE_FENCE = "```"
LINE_SEPARATOR = "\n"
PARAGRAPH_SEPARATOR = "\n\n"


class MarkdownChunker:
    """
    Token-bounded Markdown chunker.

    Lines are accumulated into the current chunk; a split happens before a
    line when adding it would exceed the limit (and the chunk already holds
    at least 10% of it), or when the line opens a level 1/2 section outside a
    code block and the chunk already holds at least half of the limit.
    """

    def __init__(self, token_limit: int,
                 count_tokens: Callable[[str], int] = estimate_token_count,
                 log_context: str = ""):
        """
        Args:
            token_limit: Target maximum tokens per chunk
            count_tokens: Token counter (heuristic by default)
            log_context: Prefix for log messages
        """
        if token_limit <= 0:
            raise ValueError(f"token_limit must be positive, got {token_limit}")
        self.token_limit = token_limit
        self.count_tokens = count_tokens
        self.log_context = log_context
        self.hard_limit = token_limit * TOKEN_LIMIT_TOLERANCE

    def _log(self, level: int, message: str):
        prefix = f"{self.log_context} " if self.log_context else ""
        logger.log(level, f"{prefix}{message}")

    def split(self, document: Optional[str]) -> List[Chunk]:
        """
        Split a document into ordered chunks.

        Args:
            document: Markdown text (tables already replaced by placeholders)

        Returns:
            Chunks in document order. Empty input yields one empty chunk.
        """
        document = document or ""
        estimated_tokens = self.count_tokens(document)
        self._log(logging.INFO, f"Estimated total tokens: ~{estimated_tokens}, limit: {self.token_limit}")

        if estimated_tokens <= self.hard_limit:
            self._log(logging.INFO, "Document within size limit, not splitting.")
            return [Chunk(index=0, content=document, estimated_tokens=estimated_tokens)]

        line_chunks = self._split_by_lines(document)
        self._log(logging.INFO, f"Initial split produced {len(line_chunks)} chunks.")

        pieces: List[Tuple[str, str]] = []
        for position, (content, separator) in enumerate(line_chunks):
            chunk_tokens = self.count_tokens(content)
            if chunk_tokens > self.hard_limit:
                self._log(
                    logging.WARNING,
                    f"Chunk {position + 1} ({chunk_tokens} tokens) still exceeds limit "
                    f"{self.token_limit}. Splitting by paragraphs."
                )
                pieces.extend(self._split_by_paragraphs(content, separator, position + 1))
            else:
                pieces.append((content, separator))

        if len(pieces) != len(line_chunks):
            self._log(logging.INFO, f"Total chunks after paragraph split: {len(pieces)}")

        return [
            Chunk(index=i, content=content, estimated_tokens=self.count_tokens(content), separator=separator)
            for i, (content, separator) in enumerate(pieces)
        ]

    def _split_by_lines(self, document: str) -> List[Tuple[str, str]]:
        """First pass: accumulate lines, split on size and section boundaries."""
        lines = document.split(LINE_SEPARATOR)
        groups: List[List[str]] = []
        current_lines: List[str] = []
        current_tokens = 0
        in_code_block = False

        for line in lines:
            line_tokens = self.count_tokens(line)

            if line.strip().startswith(CODE_FENCE):
                in_code_block = not in_code_block

            should_split = False
            if current_lines:
                if current_tokens + line_tokens > self.token_limit:
                    # Avoid pathological one-line chunks
                    if current_tokens >= self.token_limit * MIN_SPLIT_RATIO:
                        should_split = True
                elif not in_code_block and self._is_section_heading(line):
                    if current_tokens >= self.token_limit * HEADING_SPLIT_RATIO:
                        should_split = True

            if should_split:
                groups.append(current_lines)
                current_lines = []
                current_tokens = 0

            current_lines.append(line)
            current_tokens += line_tokens

        if current_lines:
            groups.append(current_lines)

        result = []
        for i, group in enumerate(groups):
            separator = LINE_SEPARATOR if i < len(groups) - 1 else ""
            result.append((LINE_SEPARATOR.join(group), separator))
        return result

    def _split_by_paragraphs(self, text: str, trailing_separator: str,
                             chunk_number: int) -> List[Tuple[str, str]]:
        """Second pass: re-split an oversized chunk on blank-line boundaries."""
        self._log(logging.INFO, f"Splitting chunk {chunk_number} by paragraphs...")
        paragraphs = text.split(PARAGRAPH_SEPARATOR)
        groups: List[List[str]] = []
        current: List[str] = []
        current_tokens = 0

        for paragraph in paragraphs:
            paragraph_tokens = self.count_tokens(paragraph)

            if paragraph_tokens > self.hard_limit:
                overflow = SegmentationOverflowError(
                    f"Paragraph in chunk {chunk_number} exceeds the token limit; kept intact",
                    token_count=paragraph_tokens,
                    token_limit=self.token_limit,
                )
                self._log(logging.WARNING, str(overflow))
                if current:
                    groups.append(current)
                groups.append([paragraph])
                current = []
                current_tokens = 0
                continue

            if current and current_tokens + paragraph_tokens > self.token_limit:
                groups.append(current)
                current = []
                current_tokens = 0

            current.append(paragraph)
            current_tokens += paragraph_tokens

        if current:
            groups.append(current)

        self._log(logging.INFO, f"Chunk {chunk_number} split into {len(groups)} sub-chunks.")

        result = []
        for i, group in enumerate(groups):
            separator = PARAGRAPH_SEPARATOR if i < len(groups) - 1 else trailing_separator
            result.append((PARAGRAPH_SEPARATOR.join(group), separator))
        return result

    @staticmethod
    def _is_section_heading(line: str) -> bool:
        match = HEADING_REGEX.match(line)
        return bool(match) and len(match.group(1)) <= 2


def split_markdown_into_chunks(document: str, token_limit: int,
                               log_context: str = "",
                               count_tokens: Callable[[str], int] = estimate_token_count) -> List[Chunk]:
    """Convenience wrapper around ``MarkdownChunker.split``."""
    return MarkdownChunker(token_limit, count_tokens=count_tokens, log_context=log_context).split(document)
