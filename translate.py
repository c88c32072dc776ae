"""
Command-line interface for long Markdown document translation
"""
import os
import sys
import signal
import argparse
import asyncio

import aiofiles
from tqdm.auto import tqdm

from longdoc.config import (
    DEFAULT_MODEL, API_ENDPOINT, API_KEY, DEFAULT_TARGET_LANGUAGE, TOKEN_LIMIT,
    MAX_CONCURRENT_REQUESTS, MAX_TRANSLATION_RETRIES, PROMPT_POOL_PATH, HEALTH_CONFIG_PATH,
    SELECTION_STRATEGY, REQUEST_TIMEOUT, RETRY_BASE_DELAY_MS, RETRY_MAX_DELAY_MS, TOKENIZER,
    TranslationConfig
)
from longdoc.core.adapters.concurrency import SemaphoreSlots
from longdoc.core.adapters.exceptions import PromptPoolExhaustedError, TranslationError
from longdoc.core.adapters.retry_manager import RetryPolicy
from longdoc.core.chunking import get_token_counter
from longdoc.core.llm import BackendConfig, OpenAICompatibleTranslator
from longdoc.core.prompt_pool import PromptPool, PromptPoolStore
from longdoc.core.prompt_pool.variants import DEFAULT_SIMILARITY, generate_variations
from longdoc.core.prompts import DEFAULT_SYSTEM_PROMPT, DEFAULT_USER_PROMPT_TEMPLATE
from longdoc.core.translator import DocumentTranslator
from longdoc.utils.unified_logger import setup_cli_logger, LogType


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate a long Markdown document using an LLM and a prompt pool.")
    parser.add_argument("-i", "--input", help="Path to the input Markdown file.")
    parser.add_argument("-o", "--output", default=None, help="Path to the output file. If not specified, uses input filename with suffix.")
    parser.add_argument("-tl", "--target_lang", default=DEFAULT_TARGET_LANGUAGE, help=f"Target language (default: {DEFAULT_TARGET_LANGUAGE}).")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL, help=f"LLM model (default: {DEFAULT_MODEL}).")
    parser.add_argument("--api_endpoint", default=API_ENDPOINT, help=f"OpenAI compatible chat completions endpoint (default: {API_ENDPOINT}).")
    parser.add_argument("--api_key", default=API_KEY, help="API key for the endpoint (default: API_KEY from .env).")
    parser.add_argument("--token_limit", type=int, default=TOKEN_LIMIT, help=f"Target chunk size in estimated tokens (default: {TOKEN_LIMIT}).")
    parser.add_argument("--tokenizer", default=TOKENIZER, choices=["heuristic", "tiktoken"], help=f"Token counter used to size chunks (default: {TOKENIZER}).")
    parser.add_argument("--concurrency", type=int, default=MAX_CONCURRENT_REQUESTS, help=f"Maximum concurrent requests (default: {MAX_CONCURRENT_REQUESTS}).")
    parser.add_argument("--max_retries", type=int, default=MAX_TRANSLATION_RETRIES, help=f"Retries per chunk after the first attempt (default: {MAX_TRANSLATION_RETRIES}).")
    parser.add_argument("--retry_base_delay_ms", type=int, default=RETRY_BASE_DELAY_MS, help=f"Backoff after the first failed attempt, in ms (default: {RETRY_BASE_DELAY_MS}).")
    parser.add_argument("--retry_max_delay_ms", type=int, default=RETRY_MAX_DELAY_MS, help=f"Upper bound of the exponential backoff, in ms (default: {RETRY_MAX_DELAY_MS}).")
    parser.add_argument("--strategy", default=SELECTION_STRATEGY, choices=["weighted", "rotation"], help=f"Prompt variant selection strategy (default: {SELECTION_STRATEGY}).")
    parser.add_argument("--prompt_pool", default=PROMPT_POOL_PATH, help=f"Prompt pool JSON file (default: {PROMPT_POOL_PATH}).")
    parser.add_argument("--health_config", default=HEALTH_CONFIG_PATH, help=f"Prompt health config JSON file (default: {HEALTH_CONFIG_PATH}).")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")
    parser.add_argument("--pool-stats", action="store_true", help="Print prompt pool health statistics and exit.")
    parser.add_argument("--generate_variants", type=int, default=0, metavar="N", help="Ask the model for N rewrites of the built-in prompts, add them (unselected) to the pool and exit.")
    parser.add_argument("--similarity", type=float, default=DEFAULT_SIMILARITY, help=f"Similarity of generated variants to the built-in prompts, 0-1 (default: {DEFAULT_SIMILARITY}).")
    parser.add_argument("--select", nargs="+", metavar="ID", help="Select prompt variants by id, putting them in service, and exit.")
    return parser


def default_output_path(input_path: str, target_lang: str) -> str:
    """``<input>_translated_<lang><ext>``, numbered if it already exists."""
    base, ext = os.path.splitext(input_path)
    candidate = f"{base}_translated_{target_lang.lower()}{ext or '.md'}"
    counter = 1
    unique = candidate
    while os.path.exists(unique):
        root, suffix = os.path.splitext(candidate)
        unique = f"{root} ({counter}){suffix}"
        counter += 1
    return unique


def load_prompt_pool(config: TranslationConfig, logger) -> PromptPool:
    pool = PromptPool(store=PromptPoolStore(config.prompt_pool_path, config.health_config_path)).init()
    if pool.get_all_prompts():
        logger.info(f"Prompt pool: {len(pool.get_active_prompts())}/{len(pool.get_all_prompts())} variant(s) eligible")
    return pool


def make_backend(config: TranslationConfig) -> BackendConfig:
    return BackendConfig(
        endpoint=config.api_endpoint,
        model=config.model,
        api_key=config.api_key or None,
        timeout=REQUEST_TIMEOUT,
    )


def make_retry_policy(config: TranslationConfig) -> RetryPolicy:
    return RetryPolicy(
        max_retries=config.max_retries,
        base_delay_ms=config.retry_base_delay_ms,
        max_delay_ms=config.retry_max_delay_ms,
    )


def run_selection(prompt_ids, config: TranslationConfig, logger) -> int:
    """Select variants by id so they receive traffic."""
    pool = load_prompt_pool(config, logger)
    known = {p.id for p in pool.get_all_prompts()}
    missing = [pid for pid in prompt_ids if pid not in known]
    if missing:
        logger.error(f"Unknown prompt variant id(s): {', '.join(missing)}")
        return 1
    for prompt_id in prompt_ids:
        pool.update_prompt(prompt_id, is_active=True, user_selected=True)
    pool.persist()
    for prompt_id in prompt_ids:
        prompt = pool.get_prompt(prompt_id)
        note = "" if prompt.is_eligible else f" (currently {prompt.status.value}, not yet eligible)"
        logger.info(f"Selected {prompt_id}: {prompt.name}{note}")
    return 0


async def run_generation(args, config: TranslationConfig, logger) -> int:
    """Generate prompt variants with the model and store them unselected."""
    pool = load_prompt_pool(config, logger)
    translator = OpenAICompatibleTranslator()
    try:
        variants = await generate_variations(
            translator, make_backend(config),
            DEFAULT_SYSTEM_PROMPT, DEFAULT_USER_PROMPT_TEMPLATE,
            count=args.generate_variants, similarity=args.similarity,
        )
    finally:
        await translator.close()
    pool.add_variations(variants)
    pool.persist()
    for variant in variants:
        logger.info(f"  {variant.id}: {variant.name}")
    logger.info(f"Added {len(variants)} prompt variant(s) to {config.prompt_pool_path}; put them in service with --select ID...")
    return 0


async def run_translation(args, config: TranslationConfig, logger) -> int:
    async with aiofiles.open(args.input, 'r', encoding='utf-8') as f:
        document = await f.read()

    pool = load_prompt_pool(config, logger)
    use_pool = bool(pool.get_all_prompts())
    if not use_pool:
        logger.info("Prompt pool is empty, using built-in prompts")

    backend = make_backend(config)
    translator = OpenAICompatibleTranslator()
    abort_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_event.set)
    except (NotImplementedError, RuntimeError):
        # Signal handlers are unavailable on Windows event loops
        pass

    progress = tqdm(total=0, unit="part", desc="Translating", disable=not sys.stderr.isatty())

    def on_progress(completed: int, total: int):
        if progress.total != total:
            progress.total = total
        progress.update(completed - progress.n)

    pipeline = DocumentTranslator(
        translator,
        backend,
        prompt_pool=pool if use_pool else None,
        slots=SemaphoreSlots(config.max_concurrent_requests),
        retry_policy=make_retry_policy(config),
        strategy=config.selection_strategy,
        log_callback=logger.create_callback(),
        progress_callback=on_progress,
        count_tokens=get_token_counter(config.tokenizer),
    )

    if use_pool:
        pool.start_health_monitoring()
    try:
        outcome = await pipeline.translate_document(
            document, config.target_language, config.token_limit, abort_event
        )
    finally:
        progress.close()
        await translator.close()
        if use_pool:
            await pool.teardown()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    async with aiofiles.open(args.output, 'w', encoding='utf-8') as f:
        await f.write(outcome.translated_text)
    logger.info("Translation Completed", LogType.TRANSLATION_END, {
        'output_file': args.output,
        'failed': outcome.failed_tasks,
    })
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = TranslationConfig.from_cli_args(args)
    logger = setup_cli_logger(enable_colors=config.enable_colors)

    if args.pool_stats:
        pool = load_prompt_pool(config, logger)
        logger.info("Prompt pool", LogType.POOL_STATS, pool.get_health_stats())
        return 0

    if args.select:
        return run_selection(args.select, config, logger)

    if args.generate_variants > 0:
        try:
            return asyncio.run(run_generation(args, config, logger))
        except TranslationError as e:
            logger.error(f"Variant generation failed: {e.message}", LogType.ERROR_DETAIL, {'details': str(e)})
            return 1

    if not args.input:
        parser.error("the following arguments are required: -i/--input")
    if not os.path.isfile(args.input):
        parser.error(f"input file not found: {args.input}")
    if args.output is None:
        args.output = default_output_path(args.input, args.target_lang)

    logger.info("Translation Started", LogType.TRANSLATION_START, {
        'input_file': args.input,
        'target_lang': config.target_language,
        'model': config.model,
        'prompt_pool': config.prompt_pool_path,
        'strategy': config.selection_strategy,
    })

    try:
        return asyncio.run(run_translation(args, config, logger))
    except TranslationError as e:
        logger.error(f"Translation failed: {e.message}", LogType.ERROR_DETAIL, {'details': str(e)})
        if isinstance(e, PromptPoolExhaustedError):
            logger.info("Select prompt variants with --select ID... or empty the pool to use the built-in prompts")
        return 1


if __name__ == "__main__":
    sys.exit(main())
