"""
Markdown table protection.

Tables are swapped for placeholders before the document is chunked and
translated, so their structure cannot be damaged by a chunk boundary or by a
free-text translation. Each table is translated separately as a whole and put
back during assembly.
"""
import logging
import re
from typing import Dict, List, Optional, Tuple

from longdoc.config import TABLE_PLACEHOLDER_TEMPLATE, TABLE_PLACEHOLDER_PATTERN, MIN_TABLE_ROWS

logger = logging.getLogger(__name__)

TABLE_ROW_REGEX = re.compile(r'^\s*\|.*\|\s*$')
CAPTION_PREFIXES = ('TABLE', 'Table', '表')
FOOTNOTE_REGEX = re.compile(r'^\s*\[\^\d+\]:')
INLINE_SUPERSCRIPT_REGEX = re.compile(r'^[a-zA-Z]?\s*\{\s*\^\s*[a-z]+\s*\}')
MATH_SUPERSCRIPT_REGEX = re.compile(r'^\$\{\s*\^\s*\\?[a-z]+\s*\}\$')
MAX_MERGE_GAP = 2


def create_table_placeholder(index: int) -> str:
    """Create the placeholder string for the table at ``index``."""
    return TABLE_PLACEHOLDER_TEMPLATE.format(index=index)


def find_table_placeholders(text: str) -> List[str]:
    """Return every table placeholder present in ``text``, in order."""
    return re.findall(TABLE_PLACEHOLDER_PATTERN, text or "")


class MarkdownTableProtector:
    """
    Detects pipe tables in Markdown and replaces them with placeholders.

    A table is a run of at least three ``| ... |`` rows. A caption line
    starting with "TABLE", "Table" or "表" right above the table belongs to
    it. Two tables separated only by blank, footnote or superscript lines are
    merged, since they are usually one table broken by the OCR/export step.
    """

    def __init__(self, min_table_rows: int = MIN_TABLE_ROWS):
        self.min_table_rows = min_table_rows

    def protect(self, text: str) -> Tuple[str, Dict[str, str]]:
        """
        Replace tables with placeholders.

        Args:
            text: Markdown text

        Returns:
            (processed_text, placeholder_map) where placeholder_map maps each
            ``__TABLE_PLACEHOLDER_n__`` to the original table Markdown,
            numbered in document order.
        """
        if not text:
            return text or "", {}

        lines = text.split('\n')
        ranges = self._merge_ranges(lines, self._find_table_ranges(lines))

        placeholder_map: Dict[str, str] = {}
        output_lines: List[str] = []
        cursor = 0
        for table_index, (start, end) in enumerate(ranges):
            output_lines.extend(lines[cursor:start])
            placeholder = create_table_placeholder(table_index)
            placeholder_map[placeholder] = '\n'.join(lines[start:end + 1])
            output_lines.append(placeholder)
            cursor = end + 1
        output_lines.extend(lines[cursor:])

        if placeholder_map:
            logger.info(f"Table detection complete: {len(placeholder_map)} table(s) protected")
        return '\n'.join(output_lines), placeholder_map

    def restore(self, text: str, placeholder_map: Dict[str, str]) -> str:
        """
        Substitute every placeholder in ``text`` with its mapped content.

        Placeholders without an entry in the map are left untouched.
        """
        if not text or not placeholder_map:
            return text
        result = text
        for placeholder, content in placeholder_map.items():
            result = result.replace(placeholder, content)
        return result

    def _find_table_ranges(self, lines: List[str]) -> List[List[int]]:
        captions = set()
        for i in range(len(lines) - 1):
            if lines[i].strip().startswith(CAPTION_PREFIXES) and TABLE_ROW_REGEX.match(lines[i + 1]):
                captions.add(i)

        ranges: List[List[int]] = []
        table_start = -1
        for i, line in enumerate(lines + [""]):
            is_row = i < len(lines) and bool(TABLE_ROW_REGEX.match(line))
            if table_start < 0 and is_row:
                table_start = i
            elif table_start >= 0 and not is_row:
                if i - table_start >= self.min_table_rows:
                    caption = table_start - 1
                    if caption in captions:
                        captions.discard(caption)
                        ranges.append([caption, i - 1])
                    else:
                        ranges.append([table_start, i - 1])
                table_start = -1
        return ranges

    @staticmethod
    def _is_filler_line(line: str) -> bool:
        stripped = line.strip()
        return (
            stripped == ''
            or stripped.startswith(('^', '*', '$'))
            or bool(FOOTNOTE_REGEX.match(stripped))
            or bool(INLINE_SUPERSCRIPT_REGEX.match(stripped))
            or bool(MATH_SUPERSCRIPT_REGEX.match(stripped))
        )

    def _merge_ranges(self, lines: List[str], ranges: List[List[int]]) -> List[List[int]]:
        if len(ranges) < 2:
            return ranges
        merged = [ranges[0]]
        for current in ranges[1:]:
            last = merged[-1]
            middle = lines[last[1] + 1:current[0]]
            if current[0] - last[1] <= MAX_MERGE_GAP and all(self._is_filler_line(l) for l in middle):
                last[1] = current[1]
            else:
                merged.append(current)
        return merged


def extract_table_from_translation(translated_text: Optional[str]) -> Optional[str]:
    """
    Pull the Markdown table out of a model reply.

    Models sometimes wrap the table in a code fence or add commentary. Keeps
    an optional caption line and the ``|`` rows (blank and ``---`` lines
    inside the table are kept too).

    Args:
        translated_text: Raw model reply

    Returns:
        The table Markdown, or None when no table row survives
    """
    if not translated_text:
        return None

    cleaned = translated_text.strip()
    if cleaned.startswith('```') and cleaned.endswith('```') and len(cleaned) >= 6:
        cleaned = cleaned[3:-3].strip()
        if cleaned.startswith(('markdown', 'md')):
            newline = cleaned.find('\n')
            cleaned = cleaned[newline:].strip() if newline >= 0 else ''

    lines = cleaned.split('\n')
    title_line = ''
    if lines and lines[0].strip().startswith(('TABLE', '表')):
        title_line = lines.pop(0)

    table_lines = []
    in_table = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith('|'):
            in_table = True
            table_lines.append(line)
        elif in_table:
            if stripped == '' or '---' in stripped:
                table_lines.append(line)
            else:
                in_table = False

    # Trailing blank lines picked up inside the table are not part of it
    while table_lines and not table_lines[-1].strip():
        table_lines.pop()

    if not table_lines:
        return None
    body = '\n'.join(table_lines)
    return f"{title_line}\n{body}" if title_line else body
