"""
Centralized configuration class
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

_config_logger = logging.getLogger('config')

# Check for DEBUG_MODE early (before .env is loaded, check environment)
_debug_mode = os.getenv('DEBUG_MODE', 'false').lower() == 'true'
if _debug_mode:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)

_env_file = Path.cwd() / '.env'
_dotenv_result = load_dotenv(_env_file)
if _debug_mode:
    _config_logger.debug(f"load_dotenv({_env_file.absolute()}) returned: {_dotenv_result}")

# LLM backend
API_ENDPOINT = os.getenv('API_ENDPOINT', 'https://api.openai.com/v1/chat/completions')
DEFAULT_MODEL = os.getenv('DEFAULT_MODEL', 'gpt-4o-mini')
API_KEY = os.getenv('API_KEY', '')
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '300'))
DEFAULT_TEMPERATURE = float(os.getenv('DEFAULT_TEMPERATURE', '0.5'))
DEFAULT_MAX_TOKENS = int(os.getenv('DEFAULT_MAX_TOKENS', '8000'))

DEFAULT_TARGET_LANGUAGE = os.getenv('DEFAULT_TARGET_LANGUAGE', 'Chinese')

# Segmentation
TOKEN_LIMIT = int(os.getenv('TOKEN_LIMIT', '2000'))
TOKEN_LIMIT_TOLERANCE = 1.1  # chunks may exceed the limit by 10%
MIN_SPLIT_RATIO = 0.1  # never flush a chunk holding less than 10% of the limit
HEADING_SPLIT_RATIO = 0.5  # split on # / ## headings once 50% of the limit is used
TOKENIZER = os.getenv('TOKENIZER', 'heuristic')  # 'heuristic' or 'tiktoken'
TIKTOKEN_ENCODING = os.getenv('TIKTOKEN_ENCODING', 'cl100k_base')

# Bounded execution
MAX_CONCURRENT_REQUESTS = int(os.getenv('MAX_CONCURRENT_REQUESTS', '4'))
MAX_TRANSLATION_RETRIES = int(os.getenv('MAX_TRANSLATION_RETRIES', '3'))
RETRY_BASE_DELAY_MS = int(os.getenv('RETRY_BASE_DELAY_MS', '1000'))
RETRY_MAX_DELAY_MS = int(os.getenv('RETRY_MAX_DELAY_MS', '30000'))
RETRY_JITTER = float(os.getenv('RETRY_JITTER', '0.1'))

# Prompt pool
PROMPT_POOL_PATH = os.getenv('PROMPT_POOL_PATH', 'data/prompt_pool.json')
HEALTH_CONFIG_PATH = os.getenv('HEALTH_CONFIG_PATH', 'data/prompt_health_config.json')
SELECTION_STRATEGY = os.getenv('SELECTION_STRATEGY', 'weighted')  # 'weighted' or 'rotation'
HEALTH_CHECK_INTERVAL_SECONDS = float(os.getenv('HEALTH_CHECK_INTERVAL_SECONDS', '60'))
REQUEST_HISTORY_SIZE = 20
LATENCY_BASELINE_MS = 10000  # latency at which a variant's weight bottoms out
POOL_SAVE_INTERVAL_SECONDS = float(os.getenv('POOL_SAVE_INTERVAL_SECONDS', '2'))

# Health manager defaults (overridden by the persisted health config)
DEFAULT_MAX_CONSECUTIVE_FAILURES = 2
DEFAULT_RESURRECTION_TIME_MINUTES = 15

# Table placeholders
TABLE_PLACEHOLDER_TEMPLATE = "__TABLE_PLACEHOLDER_{index}__"
TABLE_PLACEHOLDER_PATTERN = r'__TABLE_PLACEHOLDER_\d+__'
MIN_TABLE_ROWS = 3

DEBUG_MODE = os.getenv('DEBUG_MODE', 'false').lower() == 'true'

if DEBUG_MODE or _debug_mode:
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("=" * 60)
    _config_logger.debug("LOADED CONFIGURATION VALUES:")
    _config_logger.debug(f"   API_ENDPOINT: {API_ENDPOINT}")
    _config_logger.debug(f"   DEFAULT_MODEL: {DEFAULT_MODEL}")
    _config_logger.debug(f"   API_KEY: {'***' + API_KEY[-4:] if API_KEY else '(not set)'}")
    _config_logger.debug(f"   TOKEN_LIMIT: {TOKEN_LIMIT}")
    _config_logger.debug(f"   TOKENIZER: {TOKENIZER}")
    _config_logger.debug(f"   MAX_CONCURRENT_REQUESTS: {MAX_CONCURRENT_REQUESTS}")
    _config_logger.debug(f"   MAX_TRANSLATION_RETRIES: {MAX_TRANSLATION_RETRIES}")
    _config_logger.debug(f"   PROMPT_POOL_PATH: {PROMPT_POOL_PATH}")
    _config_logger.debug(f"   SELECTION_STRATEGY: {SELECTION_STRATEGY}")
    _config_logger.debug("=" * 60)


@dataclass
class TranslationConfig:
    """Unified configuration for the CLI and programmatic callers"""

    target_language: str = DEFAULT_TARGET_LANGUAGE
    model: str = DEFAULT_MODEL
    api_endpoint: str = API_ENDPOINT
    api_key: str = API_KEY
    timeout: int = REQUEST_TIMEOUT

    token_limit: int = TOKEN_LIMIT
    tokenizer: str = TOKENIZER
    max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS
    max_retries: int = MAX_TRANSLATION_RETRIES
    retry_base_delay_ms: int = RETRY_BASE_DELAY_MS
    retry_max_delay_ms: int = RETRY_MAX_DELAY_MS

    prompt_pool_path: str = PROMPT_POOL_PATH
    health_config_path: str = HEALTH_CONFIG_PATH
    selection_strategy: str = SELECTION_STRATEGY

    enable_colors: bool = True

    @classmethod
    def from_cli_args(cls, args) -> 'TranslationConfig':
        """Create config from CLI arguments"""
        return cls(
            target_language=args.target_lang,
            model=args.model,
            api_endpoint=args.api_endpoint,
            api_key=getattr(args, 'api_key', API_KEY),
            token_limit=getattr(args, 'token_limit', TOKEN_LIMIT),
            tokenizer=getattr(args, 'tokenizer', TOKENIZER),
            max_concurrent_requests=getattr(args, 'concurrency', MAX_CONCURRENT_REQUESTS),
            max_retries=getattr(args, 'max_retries', MAX_TRANSLATION_RETRIES),
            retry_base_delay_ms=getattr(args, 'retry_base_delay_ms', RETRY_BASE_DELAY_MS),
            retry_max_delay_ms=getattr(args, 'retry_max_delay_ms', RETRY_MAX_DELAY_MS),
            prompt_pool_path=getattr(args, 'prompt_pool', PROMPT_POOL_PATH),
            health_config_path=getattr(args, 'health_config', HEALTH_CONFIG_PATH),
            selection_strategy=getattr(args, 'strategy', SELECTION_STRATEGY),
            enable_colors=not getattr(args, 'no_color', False),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (API key masked)"""
        return {
            'target_language': self.target_language,
            'model': self.model,
            'api_endpoint': self.api_endpoint,
            'api_key': '***' + self.api_key[-4:] if self.api_key else '',
            'timeout': self.timeout,
            'token_limit': self.token_limit,
            'tokenizer': self.tokenizer,
            'max_concurrent_requests': self.max_concurrent_requests,
            'max_retries': self.max_retries,
            'retry_base_delay_ms': self.retry_base_delay_ms,
            'retry_max_delay_ms': self.retry_max_delay_ms,
            'prompt_pool_path': self.prompt_pool_path,
            'health_config_path': self.health_config_path,
            'selection_strategy': self.selection_strategy,
        }
