"""
Token counting for chunk sizing.

The default estimator is a character heuristic tuned for mixed CJK/Latin
Markdown; ``TiktokenCounter`` gives exact counts for OpenAI-style encodings
when a closer fit to the backend matters more than speed.
"""
import math
from typing import Callable, Optional

import tiktoken

from longdoc.config import TOKENIZER, TIKTOKEN_ENCODING

CJK_RATIO_THRESHOLD = 0.3
CJK_TOKENS_PER_CHAR = 1.1
LATIN_CHARS_PER_TOKEN = 3.5


def estimate_token_count(text: Optional[str]) -> int:
    """
    Estimate the token count of a text without a tokenizer.

    Text that is more than 30% non-ASCII (Chinese, Japanese, Korean...) is
    counted at 1.1 tokens per character; English and code at roughly
    3.5 characters per token.

    Args:
        text: Input text

    Returns:
        Estimated number of tokens (0 for empty text)
    """
    if not text:
        return 0
    non_ascii = sum(1 for ch in text if ord(ch) > 0x7F)
    if non_ascii / len(text) > CJK_RATIO_THRESHOLD:
        return math.ceil(len(text) * CJK_TOKENS_PER_CHAR)
    return math.ceil(len(text) / LATIN_CHARS_PER_TOKEN)


class TiktokenCounter:
    """Exact token counter backed by tiktoken."""

    def __init__(self, encoding: str = TIKTOKEN_ENCODING):
        self.encoder = tiktoken.get_encoding(encoding)

    def __call__(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return len(self.encoder.encode(text))


def get_token_counter(name: str = TOKENIZER) -> Callable[[Optional[str]], int]:
    """
    Resolve a tokenizer name to a token counting function.

    Args:
        name: 'heuristic' (character estimate) or 'tiktoken' (exact counts)

    Raises:
        ValueError: Unknown tokenizer name
    """
    if name == "heuristic":
        return estimate_token_count
    if name == "tiktoken":
        return TiktokenCounter()
    raise ValueError(f"Unknown tokenizer '{name}', expected 'heuristic' or 'tiktoken'")
