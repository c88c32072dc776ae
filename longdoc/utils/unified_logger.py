"""
Unified console logging for the longdoc CLI.

Library modules log through ``logging.getLogger(__name__)``; the CLI installs
one handler that renders every record with the colored format below, and
hands a ``log_callback(log_type, message)`` to the pipeline.
"""
import sys
import os
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Callable
from enum import Enum


class LogType(Enum):
    """Types of log messages for special handling"""
    GENERAL = "general"
    POOL_STATS = "pool_stats"
    TRANSLATION_START = "translation_start"
    TRANSLATION_END = "translation_end"
    ERROR_DETAIL = "error_detail"


class Colors:
    """ANSI color codes for terminal output"""
    NO_COLOR = os.environ.get('NO_COLOR') is not None or not sys.stdout.isatty()

    YELLOW = '' if NO_COLOR else '\033[93m'
    WHITE = '' if NO_COLOR else '\033[97m'
    GRAY = '' if NO_COLOR else '\033[90m'
    GREEN = '' if NO_COLOR else '\033[92m'
    RED = '' if NO_COLOR else '\033[91m'
    ENDC = '' if NO_COLOR else '\033[0m'

    @classmethod
    def disable(cls):
        """Disable all colors"""
        cls.YELLOW = cls.WHITE = cls.GRAY = cls.GREEN = cls.RED = cls.ENDC = ''


_LEVEL_COLORS = {
    logging.DEBUG: 'GRAY',
    logging.INFO: 'WHITE',
    logging.WARNING: 'YELLOW',
    logging.ERROR: 'RED',
    logging.CRITICAL: 'RED',
}

_CALLBACK_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class ConsoleFormatter(logging.Formatter):
    """Colored ``[HH:MM:SS] [LEVEL] message`` lines; INFO has no level tag."""

    def format(self, record: logging.LogRecord) -> str:
        color = getattr(Colors, _LEVEL_COLORS.get(record.levelno, 'WHITE'))
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level_str = f" [{record.levelname}]" if record.levelno != logging.INFO else ""
        message = record.getMessage()
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return f"{color}[{timestamp}]{level_str} {message}{Colors.ENDC}"


class UnifiedLogger:
    """
    Console logger shared by the CLI and the library modules.
    """

    def __init__(self,
                 name: str = "longdoc",
                 enable_colors: bool = True,
                 level: int = logging.INFO,
                 stream=None):
        """
        Args:
            name: Root logger name whose records are rendered
            enable_colors: Whether to use colored output
            level: Minimum level to display
            stream: Output stream (default stdout)
        """
        if not enable_colors:
            Colors.disable()

        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False
        for handler in list(self.logger.handlers):
            if getattr(handler, '_longdoc_console', False):
                self.logger.removeHandler(handler)

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(ConsoleFormatter())
        handler._longdoc_console = True
        self.logger.addHandler(handler)

        self.start_time: Optional[datetime] = None

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        if log_type == LogType.GENERAL:
            self.logger.info(message)
        else:
            self.logger.info(self._format_special(message, log_type, data or {}))

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str, log_type: LogType = LogType.GENERAL, data: Optional[Dict[str, Any]] = None):
        if log_type == LogType.ERROR_DETAIL:
            self.logger.error(self._format_error_detail(message, data or {}))
        else:
            self.logger.error(message)

    def _format_special(self, message: str, log_type: LogType, data: Dict[str, Any]) -> str:
        if log_type == LogType.TRANSLATION_START:
            return self._format_translation_start(data)
        if log_type == LogType.TRANSLATION_END:
            return self._format_translation_end(data)
        if log_type == LogType.POOL_STATS:
            return self._format_pool_stats(data)
        return message

    def _format_translation_start(self, data: Dict[str, Any]) -> str:
        self.start_time = datetime.now()
        output = [f"{Colors.YELLOW}TRANSLATION STARTED{Colors.ENDC}"]
        output.append(f"{Colors.WHITE}Input: {data.get('input_file', 'Unknown')}{Colors.ENDC}")
        output.append(f"{Colors.WHITE}Target language: {data.get('target_lang', 'Unknown')}{Colors.ENDC}")
        output.append(f"{Colors.GRAY}Model: {data.get('model', 'Unknown')}{Colors.ENDC}")
        if data.get('prompt_pool'):
            output.append(f"{Colors.GRAY}Prompt pool: {data['prompt_pool']} ({data.get('strategy', '')}){Colors.ENDC}")
        return '\n'.join(output)

    def _format_translation_end(self, data: Dict[str, Any]) -> str:
        output = [f"{Colors.WHITE}TRANSLATION COMPLETE{Colors.ENDC}"]
        if self.start_time:
            output.append(f"{Colors.GRAY}Duration: {datetime.now() - self.start_time}{Colors.ENDC}")
        if 'output_file' in data:
            output.append(f"{Colors.WHITE}Output saved to: {data['output_file']}{Colors.ENDC}")
        if data.get('failed', 0) > 0:
            output.append(f"{Colors.YELLOW}Parts kept in original language: {data['failed']}{Colors.ENDC}")
        return '\n'.join(output)

    def _format_pool_stats(self, data: Dict[str, Any]) -> str:
        output = [f"{Colors.YELLOW}PROMPT POOL{Colors.ENDC}"]
        output.append(
            f"{Colors.WHITE}Variants: {data.get('total', 0)} "
            f"(active {data.get('active', 0)}, healthy {data.get('healthy', 0)}, "
            f"degraded {data.get('degraded', 0)}, deactivated {data.get('deactivated', 0)}){Colors.ENDC}"
        )
        output.append(
            f"{Colors.GRAY}Requests: {data.get('total_requests', 0)}, "
            f"success rate {data.get('average_success_rate', 0) * 100:.1f}%{Colors.ENDC}"
        )
        return '\n'.join(output)

    def _format_error_detail(self, message: str, data: Dict[str, Any]) -> str:
        output = [f"ERROR: {message}"]
        if 'details' in data:
            output.append(f"Details: {data['details']}")
        return '\n'.join(output)

    def create_callback(self) -> Callable[[str, str], None]:
        """
        Build a ``log_callback(log_type, message)`` for the pipeline.

        Unknown log types are shown at INFO level.
        """
        def callback(log_type: str, message: str):
            self.logger.log(_CALLBACK_LEVELS.get(log_type, logging.INFO), message)

        return callback


def setup_cli_logger(enable_colors: bool = True, level: Optional[int] = None) -> UnifiedLogger:
    """Setup logger for CLI usage"""
    # Import here to avoid circular dependencies
    from longdoc.config import DEBUG_MODE

    if level is None:
        level = logging.DEBUG if DEBUG_MODE else logging.INFO
    return UnifiedLogger(enable_colors=enable_colors, level=level)
