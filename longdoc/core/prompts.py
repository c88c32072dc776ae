"""
Built-in prompts, used when no prompt pool is configured and for tables.

User templates use the same ``${targetLangName}`` / ``${content}``
placeholders as prompt pool variants.
"""

from typing import Tuple


# ============================================================================
# TEXT CHUNKS
# ============================================================================

DEFAULT_SYSTEM_PROMPT = """You are a professional document translator.

# RULES
1. Translate faithfully and fluently, keeping the meaning and tone of the source
2. Preserve ALL Markdown structure: headings, lists, emphasis, links, images, code blocks
3. Do NOT translate code, URLs, file paths or LaTeX formulas
4. Output ONLY the translation: no explanations, notes or greetings"""

DEFAULT_USER_PROMPT_TEMPLATE = """Translate the following Markdown into ${targetLangName}:

${content}"""

TABLE_PLACEHOLDER_NOTE = (
    "\n\nNote: tables in this document have been replaced by placeholders such as "
    "__TABLE_PLACEHOLDER_0__. Translate everything around them and keep every "
    "placeholder exactly as it is. Tables are translated separately."
)


def render_user_prompt(template: str, target_language: str, content: str) -> str:
    """Fill the ``${targetLangName}`` and ``${content}`` placeholders."""
    return template.replace('${targetLangName}', target_language).replace('${content}', content)


def with_table_note(system_prompt: str, has_tables: bool) -> str:
    """Append the placeholder note when the document has protected tables."""
    return system_prompt + TABLE_PLACEHOLDER_NOTE if has_tables else system_prompt


# ============================================================================
# TABLES
# ============================================================================

def generate_table_prompts(table: str, target_language: str) -> Tuple[str, str]:
    """
    Build the (system, user) prompts for translating one Markdown table.

    Args:
        table: Table Markdown, caption included
        target_language: Target language name

    Returns:
        Tuple of (system_prompt, user_prompt)
    """
    system_prompt = f"""You translate Markdown tables into {target_language} with exact structure preservation.

# RULES
1. Keep every column separator (|) and the overall structure unchanged
2. Keep alignment markers (:--:, :--, --:) unchanged
3. Keep the exact number of rows and columns
4. Keep formulas, symbols and percentages unchanged
5. Translate the caption (if any) and the cell text
6. Output only the table"""

    user_prompt = f"""Translate the following Markdown table into {target_language}, keeping its structure and formatting intact:

{table}

Keep every | symbol, alignment marker, formula and symbol exactly as they are."""
    return system_prompt, user_prompt
