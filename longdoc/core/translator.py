"""
Long-document translation pipeline.

protect tables -> split into chunks -> build text/table tasks ->
run them under bounded concurrency (prompt variants chosen from the pool) ->
reassemble in document order with tables restored.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Union

from longdoc.config import TOKEN_LIMIT, SELECTION_STRATEGY, MAX_CONCURRENT_REQUESTS
from longdoc.core.adapters.exceptions import PromptPoolExhaustedError
from longdoc.core.adapters.executor import BoundedExecutor
from longdoc.core.adapters.concurrency import SemaphoreSlots
from longdoc.core.adapters.retry_manager import RetryPolicy
from longdoc.core.adapters.tasks import TableTask, TaskKind, TextTask, TranslationTask, build_tasks
from longdoc.core.assembler import ResultAssembler, build_translated_table_map
from longdoc.core.chunking.markdown_chunker import MarkdownChunker
from longdoc.core.chunking.token_estimator import estimate_token_count
from longdoc.core.interfaces import IConcurrencySlots, ITableProtector, ITranslator
from longdoc.core.llm.base import BackendConfig
from longdoc.core.prompt_pool.models import PromptVariant, SelectionStrategy
from longdoc.core.prompt_pool.pool import PromptPool
from longdoc.core.prompts import (
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_USER_PROMPT_TEMPLATE,
    generate_table_prompts,
    render_user_prompt,
    with_table_note,
)
from longdoc.core.tables.table_protector import MarkdownTableProtector, extract_table_from_translation

logger = logging.getLogger(__name__)


@dataclass
class TranslationOutcome:
    """Result of a document translation"""
    translated_text: str
    original_chunks: List[str] = field(default_factory=list)
    translated_text_chunks: List[str] = field(default_factory=list)
    has_errors: bool = False
    aborted: bool = False
    failed_tasks: int = 0


class DocumentTranslator:
    """
    Translates a long Markdown document chunk by chunk.

    When a prompt pool is given, every text attempt runs with a variant from
    the pool and its outcome feeds the variant's health record. Without a
    pool the built-in prompts are used.
    """

    def __init__(
        self,
        translator: ITranslator,
        backend: BackendConfig,
        prompt_pool: Optional[PromptPool] = None,
        slots: Optional[IConcurrencySlots] = None,
        retry_policy: Optional[RetryPolicy] = None,
        table_protector: Optional[ITableProtector] = None,
        strategy: Union[SelectionStrategy, str] = SELECTION_STRATEGY,
        count_tokens: Callable[[str], int] = estimate_token_count,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        user_prompt_template: str = DEFAULT_USER_PROMPT_TEMPLATE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        log_callback: Optional[Callable[[str, str], None]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None
    ):
        """
        Args:
            translator: LLM transport
            backend: Endpoint/model settings passed to every call
            prompt_pool: Initialized prompt pool, or None for built-in prompts
            slots: Shared concurrency slots
            retry_policy: Per-task retry bound and backoff
            table_protector: Table placeholder swap (default Markdown tables)
            strategy: Variant selection strategy
            count_tokens: Token counter used for chunking
            system_prompt: System prompt used without a pool
            user_prompt_template: User template used without a pool
            sleep: Backoff sleep (injectable for tests)
            clock: Monotonic clock in seconds, used for latency
            log_callback: Callback for logging (log_type, message)
            progress_callback: Called with (completed, total) tasks
        """
        self.translator = translator
        self.backend = backend
        self.prompt_pool = prompt_pool
        self.table_protector = table_protector or MarkdownTableProtector()
        self.strategy = SelectionStrategy(strategy)
        self.count_tokens = count_tokens
        self.system_prompt = system_prompt
        self.user_prompt_template = user_prompt_template
        self._clock = clock
        self.log_callback = log_callback
        self.executor = BoundedExecutor(
            slots=slots if slots is not None else SemaphoreSlots(MAX_CONCURRENT_REQUESTS),
            retry_policy=retry_policy,
            sleep=sleep,
            log_callback=log_callback,
            progress_callback=progress_callback,
        )
        self.assembler = ResultAssembler(self.table_protector)

    def _log(self, log_type: str, message: str):
        if self.log_callback:
            self.log_callback(log_type, message)
        elif log_type == "error":
            logger.error(message)
        elif log_type == "warning":
            logger.warning(message)
        else:
            logger.info(message)

    async def translate_document(
        self,
        document: str,
        target_language: str,
        token_limit: int = TOKEN_LIMIT,
        abort_event: Optional[asyncio.Event] = None
    ) -> TranslationOutcome:
        """
        Translate a Markdown document.

        Args:
            document: Markdown source
            target_language: Target language name (e.g. "Chinese")
            token_limit: Target chunk size in estimated tokens
            abort_event: Global abort signal

        Returns:
            TranslationOutcome; failed chunks carry a visible marker and set
            ``has_errors``

        Raises:
            PromptPoolExhaustedError: A pool is configured but no variant is
                eligible
        """
        pool = self.prompt_pool
        if pool is not None and not pool.get_active_prompts():
            raise PromptPoolExhaustedError(
                "Prompt pool has no eligible variant: select at least one prompt",
                context={'total': len(pool.get_all_prompts())},
            )

        processed, table_map = self.table_protector.protect(document)
        chunks = MarkdownChunker(token_limit, count_tokens=self.count_tokens).split(processed)
        tasks = build_tasks(chunks, table_map)
        self._log("info", f"Document split into {len(chunks)} chunk(s) and {len(table_map)} table(s)")

        system_prompt = with_table_note(self.system_prompt, bool(table_map))
        text_tasks = [t for t in tasks if t.kind == TaskKind.TEXT]
        if pool is not None:
            for task in text_tasks:
                assigned = pool.require_prompt(self.strategy)
                pool.enqueue_request(assigned.id, task.unit_id, chunk_index=task.index)
                task.context['prompt_id'] = assigned.id

        async def translate_fn(task: TranslationTask, attempt: int) -> str:
            if isinstance(task, TableTask):
                return await self._translate_table(task, target_language)
            if pool is None:
                return await self.translator.translate(
                    system_prompt,
                    render_user_prompt(self.user_prompt_template, target_language, task.content),
                    self.backend,
                )
            return await self._translate_with_pool(pool, task, attempt, target_language, bool(table_map))

        try:
            report = await self.executor.run(tasks, translate_fn, abort_event)
        finally:
            if pool is not None:
                for task in text_tasks:
                    pool.dequeue_request(task.context.get('prompt_id', ''), task.unit_id)

        translated_tables = build_translated_table_map(table_map, report.results)
        assembled = self.assembler.assemble(chunks, table_map, translated_tables, report.results)

        failed = len(report.failed())
        if report.aborted:
            self._log("warning", "Translation aborted, unfinished parts keep their original text")
        elif failed:
            self._log("warning", f"Translation finished with {failed} failed part(s)")
        else:
            self._log("info", "Translation finished")

        return TranslationOutcome(
            translated_text=assembled.translated_text,
            original_chunks=assembled.original_chunks,
            translated_text_chunks=assembled.translated_chunks,
            has_errors=report.has_errors,
            aborted=report.aborted,
            failed_tasks=failed,
        )

    async def _translate_table(self, task: TableTask, target_language: str) -> str:
        system_prompt, user_prompt = generate_table_prompts(task.content, target_language)
        reply = await self.translator.translate(system_prompt, user_prompt, self.backend)
        table = extract_table_from_translation(reply)
        if not table:
            logger.warning(f"[{task.unit_id}] No table found in the reply, keeping the original")
            return task.content
        return table

    async def _translate_with_pool(self, pool: PromptPool, task: TextTask, attempt: int,
                                   target_language: str, has_tables: bool) -> str:
        prompt = None
        if attempt == 0:
            # The request may have been moved to another variant while it waited for a slot
            pending = pool.dequeue_request(task.context.get('prompt_id', ''), task.unit_id)
            if pending is not None:
                prompt = pool.get_prompt(pending.prompt_id)
        if prompt is None or not prompt.is_eligible:
            prompt = pool.require_prompt(self.strategy)

        try:
            return await self._call_variant(pool, prompt, task, target_language, has_tables)
        except Exception as e:
            if not getattr(e, 'recoverable', True) or not pool.get_health_config().switch_on_failure:
                raise
            replacement = pool.select_healthy_prompt(exclude_prompt_id=prompt.id)
            if replacement is None:
                raise
            self._log("warning", f"[{task.unit_id}] Switching from prompt '{prompt.name}' to '{replacement.name}'")
            return await self._call_variant(pool, replacement, task, target_language, has_tables)

    async def _call_variant(self, pool: PromptPool, prompt: PromptVariant, task: TextTask,
                            target_language: str, has_tables: bool) -> str:
        system_prompt = with_table_note(prompt.system_prompt, has_tables)
        user_prompt = prompt.render_user_prompt(target_language, task.content)
        started = self._clock()
        try:
            reply = await self.translator.translate(system_prompt, user_prompt, self.backend)
        except Exception as e:
            elapsed_ms = (self._clock() - started) * 1000
            pool.record_usage(prompt.id, False, elapsed_ms, str(e))
            raise
        pool.record_usage(prompt.id, True, (self._clock() - started) * 1000)
        return reply


async def translate_long_document(
    document: str,
    target_language: str,
    translator: ITranslator,
    backend: BackendConfig,
    token_limit: int = TOKEN_LIMIT,
    prompt_pool: Optional[PromptPool] = None,
    concurrency: int = MAX_CONCURRENT_REQUESTS,
    abort_event: Optional[asyncio.Event] = None,
    **kwargs
) -> TranslationOutcome:
    """Translate a document with a one-off DocumentTranslator."""
    pipeline = DocumentTranslator(
        translator,
        backend,
        prompt_pool=prompt_pool,
        slots=SemaphoreSlots(concurrency),
        **kwargs
    )
    return await pipeline.translate_document(document, target_language, token_limit, abort_event)
