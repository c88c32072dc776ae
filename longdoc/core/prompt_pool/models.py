"""
Data models for the prompt pool.

The JSON layout (camelCase keys, ISO-8601 timestamps) is the persisted
format; ``to_dict`` / ``from_dict`` convert between it and the dataclasses.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from longdoc.config import (
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    DEFAULT_RESURRECTION_TIME_MINUTES,
    REQUEST_HISTORY_SIZE,
)

logger = logging.getLogger(__name__)


class HealthState(Enum):
    """Circuit breaker state of a prompt variant."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DEACTIVATED = "deactivated"


class SelectionStrategy(Enum):
    """How a variant is picked among the eligible ones."""
    WEIGHTED = "weighted"
    ROTATION = "rotation"


ELIGIBLE_STATES = (HealthState.HEALTHY, HealthState.DEGRADED)
HEALTH_PRIORITY = {HealthState.HEALTHY: 0, HealthState.DEGRADED: 1}


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # Timestamps written by browsers end with "Z"
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RequestRecord:
    """One entry of a variant's request history."""
    timestamp: datetime
    success: bool
    response_time_ms: float = 0
    error: Optional[str] = None
    consecutive_failures_at_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': _to_iso(self.timestamp),
            'success': self.success,
            'responseTime': self.response_time_ms,
            'error': self.error,
            'consecutiveFailureCount': self.consecutive_failures_at_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestRecord':
        return cls(
            timestamp=_from_iso(data.get('timestamp')),
            success=bool(data.get('success', False)),
            response_time_ms=data.get('responseTime', 0) or 0,
            error=data.get('error'),
            consecutive_failures_at_time=data.get('consecutiveFailureCount', 0) or 0,
        )


@dataclass
class HealthStatus:
    """Health counters and breaker state of a variant."""
    status: HealthState = HealthState.HEALTHY
    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0
    last_used: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    deactivation_reason: Optional[str] = None
    request_history: List[RequestRecord] = field(default_factory=list)
    average_response_time: float = 0

    @property
    def success_rate(self) -> Optional[float]:
        """Share of successful requests, None without history."""
        if self.total_requests <= 0:
            return None
        return self.success_count / self.total_requests

    def append_record(self, record: RequestRecord, max_size: int = REQUEST_HISTORY_SIZE):
        """Append to the bounded history, evicting the oldest entries."""
        self.request_history.append(record)
        if len(self.request_history) > max_size:
            del self.request_history[:len(self.request_history) - max_size]

    def recompute_average_response_time(self):
        """Mean response time over the timed successful records in the window."""
        times = [r.response_time_ms for r in self.request_history
                 if r.success and r.response_time_ms > 0]
        self.average_response_time = round(sum(times) / len(times)) if times else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'totalRequests': self.total_requests,
            'successCount': self.success_count,
            'failureCount': self.failure_count,
            'consecutiveFailures': self.consecutive_failures,
            'lastUsed': _to_iso(self.last_used),
            'lastSuccess': _to_iso(self.last_success),
            'lastFailure': _to_iso(self.last_failure),
            'deactivatedAt': _to_iso(self.deactivated_at),
            'deactivationReason': self.deactivation_reason,
            'requestHistory': [r.to_dict() for r in self.request_history],
            'averageResponseTime': self.average_response_time,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'HealthStatus':
        if not data:
            return cls()
        consecutive = data.get('consecutiveFailures', 0) or 0
        try:
            status = HealthState(data.get('status', 'healthy'))
        except ValueError:
            # Older pools used a transient "failed" state
            status = HealthState.DEGRADED if consecutive > 0 else HealthState.HEALTHY
        history = [RequestRecord.from_dict(r) for r in data.get('requestHistory') or []]
        return cls(
            status=status,
            total_requests=data.get('totalRequests', 0) or 0,
            success_count=data.get('successCount', 0) or 0,
            failure_count=data.get('failureCount', 0) or 0,
            consecutive_failures=consecutive,
            last_used=_from_iso(data.get('lastUsed')),
            last_success=_from_iso(data.get('lastSuccess')),
            last_failure=_from_iso(data.get('lastFailure')),
            deactivated_at=_from_iso(data.get('deactivatedAt')),
            deactivation_reason=data.get('deactivationReason'),
            request_history=history[-REQUEST_HISTORY_SIZE:],
            average_response_time=data.get('averageResponseTime', 0) or 0,
        )


@dataclass
class PromptVariant:
    """An interchangeable system/user prompt pair with its health record.

    ``user_prompt_template`` carries the ``${targetLangName}`` and
    ``${content}`` placeholders.
    """
    id: str
    name: str
    system_prompt: str
    user_prompt_template: str
    usage_count: int = 0
    is_active: bool = False
    user_selected: Optional[bool] = None
    health_status: HealthStatus = field(default_factory=HealthStatus)
    description: str = ''
    category: str = 'general'
    tags: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    ai_generated: bool = False

    @property
    def status(self) -> HealthState:
        return self.health_status.status

    @property
    def is_eligible(self) -> bool:
        """Selectable: chosen by the user, active and not circuit-broken."""
        return (
            self.is_active
            and self.user_selected is True
            and self.health_status.status in ELIGIBLE_STATES
        )

    def render_user_prompt(self, target_language: str, content: str) -> str:
        return (self.user_prompt_template
                .replace('${targetLangName}', target_language)
                .replace('${content}', content))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'systemPrompt': self.system_prompt,
            'userPromptTemplate': self.user_prompt_template,
            'description': self.description,
            'category': self.category,
            'tags': list(self.tags),
            'created_at': _to_iso(self.created_at),
            'usageCount': self.usage_count,
            'isActive': self.is_active,
            'userSelected': self.user_selected,
            'aiGenerated': self.ai_generated,
            'healthStatus': self.health_status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PromptVariant':
        usage = data.get('usageCount', data.get('usage_count', 0)) or 0
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            system_prompt=data.get('systemPrompt', ''),
            user_prompt_template=data.get('userPromptTemplate', ''),
            usage_count=usage,
            is_active=bool(data.get('isActive', False)),
            user_selected=data.get('userSelected'),
            health_status=HealthStatus.from_dict(data.get('healthStatus')),
            description=data.get('description', '') or '',
            category=data.get('category', 'general') or 'general',
            tags=list(data.get('tags') or []),
            created_at=_from_iso(data.get('created_at')),
            ai_generated=bool(data.get('aiGenerated', False)),
        )


@dataclass
class HealthConfig:
    """Process-wide circuit breaker settings."""
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    deactivation_enabled: bool = True
    resurrection_time_minutes: float = DEFAULT_RESURRECTION_TIME_MINUTES
    resurrection_enabled: bool = True
    switch_on_failure: bool = True
    queue_management_enabled: bool = True

    _KEYS = {
        'max_consecutive_failures': 'maxConsecutiveFailures',
        'deactivation_enabled': 'deactivationEnabled',
        'resurrection_time_minutes': 'resurrectionTimeMinutes',
        'resurrection_enabled': 'resurrectionEnabled',
        'switch_on_failure': 'switchOnFailure',
        'queue_management_enabled': 'queueManagementEnabled',
    }
    _FLAGS = {'deactivation_enabled', 'resurrection_enabled', 'switch_on_failure', 'queue_management_enabled'}

    @property
    def degradation_threshold(self) -> int:
        return self.max_consecutive_failures // 2

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        return {json_key: values[attr] for attr, json_key in self._KEYS.items()}

    @classmethod
    def coerce(cls, attr: str, value: Any) -> Any:
        """
        Convert a raw setting to the field's type.

        Raises:
            ValueError: The value has the wrong type or is out of range
        """
        if attr in cls._FLAGS:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
                return value.strip().lower() == 'true'
            raise ValueError(f"{attr} must be a boolean, got {value!r}")
        if isinstance(value, bool):
            raise ValueError(f"{attr} must be a number, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{attr} must be a number, got {value!r}")
        if attr == 'max_consecutive_failures':
            if number != int(number) or number < 1:
                raise ValueError(f"{attr} must be a positive integer, got {value!r}")
            return int(number)
        if number < 0:
            raise ValueError(f"{attr} must not be negative, got {value!r}")
        return number

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'HealthConfig':
        """Build from persisted JSON, defaults filling any missing or invalid key."""
        config = cls()
        for attr, json_key in cls._KEYS.items():
            if not data or json_key not in data:
                continue
            try:
                setattr(config, attr, cls.coerce(attr, data[json_key]))
            except ValueError as e:
                logger.warning(f"Ignoring health config {json_key}: {e}; keeping {getattr(config, attr)!r}")
        return config


@dataclass
class PendingRequest:
    """A request queued under a variant that has not started yet."""
    request_id: str
    prompt_id: str
    enqueued_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)
    replaced_from: Optional[str] = None
    replaced_at: Optional[datetime] = None
