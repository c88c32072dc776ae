"""
Translation tasks.

A task is a single, independently retried unit of translation work:
- TEXT: one chunk of the table-protected document
- TABLE: one protected Markdown table

Results are keyed by ``(kind, index)`` so concurrent tasks never write to
the same slot and the document order can be restored from indices alone.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from longdoc.core.chunking.models import Chunk


class TaskKind(Enum):
    TEXT = "text"
    TABLE = "table"


TaskKey = Tuple[TaskKind, int]


@dataclass
class TextTask:
    """Translate one chunk.

    Attributes:
        index: Chunk index in document order
        content: Chunk text (may contain table placeholders)
        context: Free-form metadata for logging/prompting
    """
    index: int
    content: str
    context: Dict[str, Any] = field(default_factory=dict)

    kind = TaskKind.TEXT

    @property
    def key(self) -> TaskKey:
        return (self.kind, self.index)

    @property
    def unit_id(self) -> str:
        return f"text-{self.index}"


@dataclass
class TableTask:
    """Translate one protected table.

    Attributes:
        index: Position of the table among all placeholders
        placeholder: Placeholder standing in for the table in the text
        content: Original table Markdown
        context: Free-form metadata for logging/prompting
    """
    index: int
    placeholder: str
    content: str
    context: Dict[str, Any] = field(default_factory=dict)

    kind = TaskKind.TABLE

    @property
    def key(self) -> TaskKey:
        return (self.kind, self.index)

    @property
    def unit_id(self) -> str:
        return f"table-{self.index}"


TranslationTask = Union[TextTask, TableTask]


@dataclass
class TaskResult:
    """Outcome of a task after all its attempts.

    ``content`` is the translation on success, and the fallback text
    otherwise, so assembly never has to special-case failures.
    """
    key: TaskKey
    content: str
    success: bool
    attempts: int
    placeholder: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def kind(self) -> TaskKind:
        return self.key[0]

    @property
    def index(self) -> int:
        return self.key[1]


def build_tasks(chunks: List[Chunk], table_map: Optional[Dict[str, str]] = None) -> List[TranslationTask]:
    """
    Build the uniform task list: one text task per chunk, then one table
    task per protected table (in placeholder order).
    """
    tasks: List[TranslationTask] = [
        TextTask(index=chunk.index, content=chunk.content,
                 context={'estimated_tokens': chunk.estimated_tokens})
        for chunk in chunks
    ]
    for i, (placeholder, table) in enumerate((table_map or {}).items()):
        tasks.append(TableTask(index=i, placeholder=placeholder, content=table))
    return tasks
