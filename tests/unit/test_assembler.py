"""
Unit tests for ResultAssembler.
"""
import logging

from longdoc.core.adapters.tasks import TaskKind, TaskResult
from longdoc.core.assembler import ResultAssembler, build_translated_table_map
from longdoc.core.chunking import Chunk

TABLE = "| a | b |\n| --- | --- |\n| 1 | 2 |"
TRANSLATED_TABLE = "| A | B |\n| --- | --- |\n| 1 | 2 |"
PLACEHOLDER = "__TABLE_PLACEHOLDER_0__"


def text_result(index, content, success=True):
    return TaskResult(key=(TaskKind.TEXT, index), content=content, success=success, attempts=1)


def table_result(index, placeholder, content, success=True):
    return TaskResult(key=(TaskKind.TABLE, index), content=content, success=success,
                      attempts=1, placeholder=placeholder)


class TestResultAssembler:
    """Tests for ResultAssembler.assemble."""

    def setup_method(self):
        self.assembler = ResultAssembler()

    def test_orders_by_index_not_completion(self):
        chunks = [Chunk(index=i, content=f"c{i}", estimated_tokens=1) for i in range(3)]
        results = {}
        for i in (2, 0, 1):
            results[(TaskKind.TEXT, i)] = text_result(i, f"t{i}")

        assembled = self.assembler.assemble(list(reversed(chunks)), {}, {}, results)

        assert assembled.translated_text == "t0\n\nt1\n\nt2"
        assert assembled.original_chunks == ["c0", "c1", "c2"]
        assert assembled.translated_chunks == ["t0", "t1", "t2"]

    def test_missing_result_keeps_original_chunk(self, caplog):
        chunks = [Chunk(index=0, content="c0", estimated_tokens=1), Chunk(index=1, content="c1", estimated_tokens=1)]
        with caplog.at_level(logging.WARNING, logger="longdoc.core.assembler"):
            assembled = self.assembler.assemble(chunks, {}, {}, {(TaskKind.TEXT, 0): text_result(0, "t0")})

        assert assembled.translated_text == "t0\n\nc1"
        assert "No result for chunk 1" in caplog.text

    def test_translated_table_is_restored(self):
        chunks = [Chunk(index=0, content=f"before\n{PLACEHOLDER}\nafter", estimated_tokens=3)]
        table_map = {PLACEHOLDER: TABLE}
        results = {
            (TaskKind.TEXT, 0): text_result(0, f"avant\n{PLACEHOLDER}\napres"),
            (TaskKind.TABLE, 0): table_result(0, PLACEHOLDER, TRANSLATED_TABLE),
        }

        assembled = self.assembler.assemble(chunks, table_map, build_translated_table_map(table_map, results), results)

        assert assembled.translated_text == f"avant\n{TRANSLATED_TABLE}\napres"
        assert assembled.original_chunks == [f"before\n{TABLE}\nafter"]

    def test_missing_table_translation_falls_back_to_original(self, caplog):
        chunks = [Chunk(index=0, content=PLACEHOLDER, estimated_tokens=1)]
        results = {(TaskKind.TEXT, 0): text_result(0, PLACEHOLDER)}

        with caplog.at_level(logging.WARNING, logger="longdoc.core.assembler"):
            assembled = self.assembler.assemble(chunks, {PLACEHOLDER: TABLE}, {}, results)

        assert assembled.translated_text == TABLE
        assert "AssemblyPlaceholderMismatchError" in caplog.text

    def test_failed_table_result_restores_original(self):
        """A table that exhausted its retries carries the original table as content."""
        chunks = [Chunk(index=0, content=PLACEHOLDER, estimated_tokens=1)]
        table_map = {PLACEHOLDER: TABLE}
        results = {
            (TaskKind.TEXT, 0): text_result(0, PLACEHOLDER),
            (TaskKind.TABLE, 0): table_result(0, PLACEHOLDER, TABLE, success=False),
        }
        assembled = self.assembler.assemble(chunks, table_map, build_translated_table_map(table_map, results), results)

        assert assembled.translated_text == TABLE
        assert "Translation failed" not in assembled.translated_text

    def test_unknown_placeholder_is_left_and_logged(self, caplog):
        chunks = [Chunk(index=0, content="x", estimated_tokens=1)]
        results = {(TaskKind.TEXT, 0): text_result(0, "x __TABLE_PLACEHOLDER_7__")}

        with caplog.at_level(logging.WARNING, logger="longdoc.core.assembler"):
            assembled = self.assembler.assemble(chunks, {}, {}, results)

        assert assembled.translated_text == "x __TABLE_PLACEHOLDER_7__"
        assert "unknown table placeholder" in caplog.text


class TestBuildTranslatedTableMap:
    """Tests for build_translated_table_map."""

    def test_only_known_table_results(self):
        results = {
            (TaskKind.TEXT, 0): text_result(0, "text"),
            (TaskKind.TABLE, 0): table_result(0, PLACEHOLDER, TRANSLATED_TABLE),
            (TaskKind.TABLE, 1): table_result(1, "__TABLE_PLACEHOLDER_9__", "| z |"),
        }
        assert build_translated_table_map({PLACEHOLDER: TABLE}, results) == {PLACEHOLDER: TRANSLATED_TABLE}
