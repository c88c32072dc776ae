"""
Result assembly: puts translated chunks back in document order and
restores the protected tables.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from longdoc.core.adapters.exceptions import AssemblyPlaceholderMismatchError
from longdoc.core.adapters.tasks import TaskKey, TaskKind, TaskResult
from longdoc.core.chunking.models import Chunk
from longdoc.core.interfaces import ITableProtector
from longdoc.core.tables.table_protector import MarkdownTableProtector, find_table_placeholders

logger = logging.getLogger(__name__)

CHUNK_JOINER = "\n\n"


@dataclass
class AssemblyResult:
    """Final document plus the per-chunk views kept for auditing."""
    translated_text: str
    original_chunks: List[str] = field(default_factory=list)
    translated_chunks: List[str] = field(default_factory=list)


def build_translated_table_map(table_map: Mapping[str, str],
                               results: Mapping[TaskKey, TaskResult]) -> Dict[str, str]:
    """Placeholder -> translated table, from the table-task results.

    Placeholders without a table result are simply absent.
    """
    translated = {}
    for key, result in results.items():
        if key[0] != TaskKind.TABLE or not result.placeholder:
            continue
        if result.placeholder in table_map:
            translated[result.placeholder] = result.content
    return translated


class ResultAssembler:
    """Reorders translated chunks by index and restores tables."""

    def __init__(self, table_protector: Optional[ITableProtector] = None):
        self.table_protector = table_protector or MarkdownTableProtector()

    def assemble(
        self,
        chunks: List[Chunk],
        table_map: Mapping[str, str],
        translated_table_map: Mapping[str, str],
        results: Mapping[TaskKey, TaskResult]
    ) -> AssemblyResult:
        """
        Build the final document.

        Args:
            chunks: Chunks of the table-protected document
            table_map: Placeholder -> original table
            translated_table_map: Placeholder -> translated table
            results: Task results keyed by (kind, index)

        Returns:
            AssemblyResult with the translated text, the original chunks
            (tables restored) and the translated chunks (translated tables
            restored), both in index order
        """
        table_map = dict(table_map)
        restore_map = self._restore_map(table_map, translated_table_map)

        original_chunks = []
        translated_chunks = []
        for chunk in sorted(chunks, key=lambda c: c.index):
            original_chunks.append(self.table_protector.restore(chunk.content, table_map))

            result = results.get((TaskKind.TEXT, chunk.index))
            if result is None:
                logger.warning(f"No result for chunk {chunk.index}, keeping original text")
                translated = chunk.content
            else:
                translated = result.content
            translated_chunks.append(self.table_protector.restore(translated, restore_map))

        # Placeholders split across a chunk boundary only resolve on the joined text
        translated_text = self.table_protector.restore(CHUNK_JOINER.join(translated_chunks), restore_map)

        leftovers = find_table_placeholders(translated_text)
        if leftovers:
            logger.warning(f"{len(leftovers)} unknown table placeholder(s) left in output: {', '.join(leftovers)}")

        return AssemblyResult(
            translated_text=translated_text,
            original_chunks=original_chunks,
            translated_chunks=translated_chunks,
        )

    @staticmethod
    def _restore_map(table_map: Dict[str, str], translated_table_map: Mapping[str, str]) -> Dict[str, str]:
        restore_map = {}
        for placeholder, original in table_map.items():
            translated = translated_table_map.get(placeholder)
            if translated is None:
                logger.warning(AssemblyPlaceholderMismatchError(
                    "No translated table, restoring the original", placeholder=placeholder
                ))
                restore_map[placeholder] = original
            else:
                restore_map[placeholder] = translated
        return restore_map
