"""
Prompt pool: interchangeable prompt variants with health tracking.
"""
from longdoc.core.prompt_pool.models import (
    HealthConfig,
    HealthState,
    HealthStatus,
    PendingRequest,
    PromptVariant,
    RequestRecord,
    SelectionStrategy,
)
from longdoc.core.prompt_pool.monitor import HealthMonitor
from longdoc.core.prompt_pool.pool import PromptPool
from longdoc.core.prompt_pool.storage import PromptPoolStore

__all__ = [
    'HealthConfig',
    'HealthMonitor',
    'HealthState',
    'HealthStatus',
    'PendingRequest',
    'PromptPool',
    'PromptPoolStore',
    'PromptVariant',
    'RequestRecord',
    'SelectionStrategy',
]
