"""
Unit tests for Markdown table protection.

Tests placeholder swapping, caption handling, table merging and extraction of
tables from model replies.
"""
import pytest

from longdoc.core.tables import (
    MarkdownTableProtector,
    create_table_placeholder,
    extract_table_from_translation,
    find_table_placeholders,
)


TABLE_A = "| a | b |\n| --- | --- |\n| 1 | 2 |"
TABLE_B = "| c | d |\n| --- | --- |\n| 3 | 4 |"


class TestPlaceholders:
    """Tests for placeholder helpers."""

    def test_create_placeholder(self):
        assert create_table_placeholder(0) == "__TABLE_PLACEHOLDER_0__"
        assert create_table_placeholder(12) == "__TABLE_PLACEHOLDER_12__"

    def test_find_placeholders_in_order(self):
        text = "x __TABLE_PLACEHOLDER_1__ y __TABLE_PLACEHOLDER_0__"
        assert find_table_placeholders(text) == ["__TABLE_PLACEHOLDER_1__", "__TABLE_PLACEHOLDER_0__"]

    def test_find_placeholders_empty(self):
        assert find_table_placeholders("") == []
        assert find_table_placeholders(None) == []


class TestProtect:
    """Tests for MarkdownTableProtector.protect / restore."""

    def setup_method(self):
        self.protector = MarkdownTableProtector()

    def test_no_tables(self):
        text = "# Title\n\nJust prose | with a pipe."
        processed, table_map = self.protector.protect(text)
        assert processed == text
        assert table_map == {}

    def test_empty_text(self):
        assert self.protector.protect("") == ("", {})

    def test_captioned_table_round_trip(self, sample_markdown):
        processed, table_map = self.protector.protect(sample_markdown)

        assert list(table_map) == ["__TABLE_PLACEHOLDER_0__"]
        assert table_map["__TABLE_PLACEHOLDER_0__"].startswith("Table 1: Accuracy by model\n| Model")
        assert "| Model |" not in processed
        assert "Table 1:" not in processed
        assert "```python" in processed
        assert self.protector.restore(processed, table_map) == sample_markdown

    def test_chinese_caption_belongs_to_table(self):
        text = "前言\n\n表 1 结果\n" + TABLE_A + "\n\n结论"
        processed, table_map = self.protector.protect(text)
        assert table_map["__TABLE_PLACEHOLDER_0__"] == "表 1 结果\n" + TABLE_A
        assert processed == "前言\n\n__TABLE_PLACEHOLDER_0__\n\n结论"

    def test_two_row_block_is_not_a_table(self):
        text = "intro\n| a | b |\n| 1 | 2 |\noutro"
        processed, table_map = self.protector.protect(text)
        assert table_map == {}
        assert processed == text

    def test_separate_tables_numbered_in_document_order(self):
        text = "first\n" + TABLE_A + "\nsome prose in between\n" + TABLE_B + "\nlast"
        processed, table_map = self.protector.protect(text)

        assert table_map == {
            "__TABLE_PLACEHOLDER_0__": TABLE_A,
            "__TABLE_PLACEHOLDER_1__": TABLE_B,
        }
        assert processed == (
            "first\n__TABLE_PLACEHOLDER_0__\nsome prose in between\n__TABLE_PLACEHOLDER_1__\nlast"
        )

    def test_tables_split_by_blank_line_are_merged(self):
        text = TABLE_A + "\n\n" + TABLE_B
        processed, table_map = self.protector.protect(text)
        assert processed == "__TABLE_PLACEHOLDER_0__"
        assert table_map["__TABLE_PLACEHOLDER_0__"] == text

    def test_tables_split_by_footnote_are_merged(self):
        text = TABLE_A + "\n[^1]: source\n" + TABLE_B
        _, table_map = self.protector.protect(text)
        assert len(table_map) == 1

    def test_restore_leaves_unknown_placeholders(self):
        text = "__TABLE_PLACEHOLDER_0__ and __TABLE_PLACEHOLDER_9__"
        restored = self.protector.restore(text, {"__TABLE_PLACEHOLDER_0__": "T"})
        assert restored == "T and __TABLE_PLACEHOLDER_9__"


class TestExtractTableFromTranslation:
    """Tests for extract_table_from_translation."""

    def test_plain_table(self):
        assert extract_table_from_translation(TABLE_A) == TABLE_A

    def test_table_with_commentary(self):
        reply = "Here is the translated table:\n```markdown\n" + TABLE_A + "\n```\nHope this helps."
        assert extract_table_from_translation(reply) == TABLE_A

    def test_fenced_table_keeps_title(self):
        reply = "```markdown\nTABLE 1 Results\n" + TABLE_A + "\n```"
        assert extract_table_from_translation(reply) == "TABLE 1 Results\n" + TABLE_A

    @pytest.mark.parametrize("reply", [None, "", "No table here, sorry."])
    def test_no_table(self, reply):
        assert extract_table_from_translation(reply) is None
