"""
JSON persistence for the prompt pool.

Two documents are kept side by side: the pool (an array of variants) and the
health config (an object). Writes go through a temp file and ``os.replace``
so a crash mid-write never leaves a truncated pool behind.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Union

from longdoc.config import PROMPT_POOL_PATH, HEALTH_CONFIG_PATH
from longdoc.core.adapters.exceptions import PromptPoolStorageError
from longdoc.core.prompt_pool.models import PromptVariant, HealthConfig

logger = logging.getLogger(__name__)


class PromptPoolStore:
    """Reads and writes the pool and health config JSON documents."""

    def __init__(self,
                 pool_path: Union[str, Path] = PROMPT_POOL_PATH,
                 health_config_path: Union[str, Path] = HEALTH_CONFIG_PATH):
        self.pool_path = Path(pool_path)
        self.health_config_path = Path(health_config_path)

    def load_pool(self) -> List[PromptVariant]:
        """Load the variants; a missing or unreadable file yields an empty pool."""
        data = self._read_json(self.pool_path, default=[])
        if not isinstance(data, list):
            logger.error(f"Prompt pool at {self.pool_path} is not a JSON array, ignoring it")
            return []
        variants = []
        for i, item in enumerate(data):
            try:
                variants.append(PromptVariant.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid prompt variant #{i} in {self.pool_path}: {e}")
        return variants

    def save_pool(self, variants: List[PromptVariant]):
        self._write_json(self.pool_path, [v.to_dict() for v in variants])

    def load_health_config(self) -> HealthConfig:
        """Load the health config merged over the defaults."""
        data = self._read_json(self.health_config_path, default={})
        if not isinstance(data, dict):
            logger.error(f"Health config at {self.health_config_path} is not a JSON object, using defaults")
            data = {}
        return HealthConfig.from_dict(data)

    def save_health_config(self, config: HealthConfig):
        self._write_json(self.health_config_path, config.to_dict())

    @staticmethod
    def _read_json(path: Path, default):
        if not path.exists():
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return default

    @staticmethod
    def _write_json(path: Path, payload):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PromptPoolStorageError(f"Failed to save {path}: {e}", context={'path': str(path)})
