"""
Markdown table protection (placeholder swap before translation).
"""
from longdoc.core.tables.table_protector import (
    MarkdownTableProtector,
    create_table_placeholder,
    extract_table_from_translation,
    find_table_placeholders,
)

__all__ = [
    'MarkdownTableProtector',
    'create_table_placeholder',
    'extract_table_from_translation',
    'find_table_placeholders',
]
