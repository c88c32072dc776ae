"""
Data models for Markdown chunking.
"""

from dataclasses import dataclass
from typing import List


@dataclass
class Chunk:
    """A contiguous, token-bounded slice of the source document.

    Attributes:
        index: Position of the chunk in the document (0-based)
        content: Chunk text, without the separator that followed it
        estimated_tokens: Token estimate for ``content``
        separator: Exact source text between this chunk and the next one
            ("\\n" after a line split, "\\n\\n" after a paragraph split,
            "" for the last chunk)
    """
    index: int
    content: str
    estimated_tokens: int
    separator: str = ""

    def exceeds(self, token_limit: int, tolerance: float = 1.1) -> bool:
        """True if the chunk is above the soft token bound."""
        return self.estimated_tokens > token_limit * tolerance


def join_chunks(chunks: List[Chunk]) -> str:
    """Rebuild the segmented text from its chunks, in index order."""
    ordered = sorted(chunks, key=lambda c: c.index)
    return "".join(c.content + c.separator for c in ordered)
