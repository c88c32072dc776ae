"""
Health-aware registry of prompt variants.

Each variant carries a client-side circuit breaker:

    healthy --(floor(max/2) consecutive failures)--> degraded
    degraded --(success)--> healthy
    any --(max consecutive failures, deactivation enabled)--> deactivated
    deactivated --(resurrection time elapsed / manual reactivation)--> healthy

Only user-selected, active, non-deactivated variants receive traffic.
Requests still queued under a variant that just failed are migrated to a
healthy one. State transitions are logged and forwarded to listeners; they
are never raised to callers.

All mutations go through one pool-level lock.
"""
import logging
import random
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from longdoc.config import LATENCY_BASELINE_MS, HEALTH_CHECK_INTERVAL_SECONDS, POOL_SAVE_INTERVAL_SECONDS
from longdoc.core.adapters.exceptions import PromptPoolExhaustedError, PromptPoolStorageError
from longdoc.core.prompt_pool.models import (
    HEALTH_PRIORITY,
    HealthConfig,
    HealthState,
    PendingRequest,
    PromptVariant,
    RequestRecord,
    SelectionStrategy,
    utc_now,
)
from longdoc.core.prompt_pool.storage import PromptPoolStore

logger = logging.getLogger(__name__)

# Listener events
EVENT_DEGRADED = "degraded"
EVENT_DEACTIVATED = "deactivated"
EVENT_RECOVERED = "recovered"
EVENT_RESURRECTED = "resurrected"
EVENT_REQUESTS_MIGRATED = "requests_migrated"

PoolListener = Callable[[str, PromptVariant], None]

_UPDATABLE_FIELDS = {
    'name', 'system_prompt', 'user_prompt_template', 'usage_count', 'is_active',
    'user_selected', 'description', 'category', 'tags',
}


class PromptPool:
    """
    Registry of prompt variants with per-variant health tracking.

    Lifecycle: ``init()`` loads and migrates the persisted pool,
    ``start_health_monitoring()`` launches the resurrection ticker,
    ``persist()`` writes both JSON documents and ``teardown()`` stops the
    ticker and persists.

    Getters return the live ``PromptVariant`` objects; mutate them only
    through the pool methods.
    """

    def __init__(
        self,
        store: Optional[PromptPoolStore] = None,
        health_config: Optional[HealthConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        save_interval: float = POOL_SAVE_INTERVAL_SECONDS,
        monotonic: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            store: JSON persistence; None keeps the pool in memory only
            health_config: Explicit config; when None it is loaded from the store
            clock: Returns the current aware datetime (injectable for tests)
            rng: Random source used by weighted selection
            save_interval: Minimum seconds between automatic pool writes
            monotonic: Clock for the write debounce
        """
        self.store = store
        self._health_config = health_config or HealthConfig()
        self._config_is_explicit = health_config is not None
        self._clock = clock or utc_now
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._prompts: List[PromptVariant] = []
        self._pending: Dict[str, List[PendingRequest]] = {}
        self._listeners: List[PoolListener] = []
        self._monitor = None
        self.save_interval = save_interval
        self._monotonic = monotonic
        self._last_save: Optional[float] = None
        self._dirty = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> 'PromptPool':
        """Load the persisted pool and config, then run the one-time migration."""
        with self._lock:
            if self.store is not None:
                self._prompts = self.store.load_pool()
                if not self._config_is_explicit:
                    self._health_config = self.store.load_health_config()
            self.migrate_usage_to_requests_if_needed()
            logger.info(f"[PromptPool] Loaded {len(self._prompts)} prompt variant(s)")
        return self

    def persist(self):
        """Write pool and health config. Raises PromptPoolStorageError on failure."""
        if self.store is None:
            return
        with self._lock:
            self.store.save_pool(self._prompts)
            self.store.save_health_config(self._health_config)
            self._dirty = False
            self._last_save = self._monotonic()

    def start_health_monitoring(self, interval: float = HEALTH_CHECK_INTERVAL_SECONDS, sleep=None):
        """Start the periodic resurrection check on the running event loop."""
        from longdoc.core.prompt_pool.monitor import HealthMonitor

        if self._monitor is None:
            kwargs = {'sleep': sleep} if sleep is not None else {}
            self._monitor = HealthMonitor(self, interval=interval, **kwargs)
        self._monitor.start()
        return self._monitor

    async def teardown(self):
        """Stop the resurrection ticker and persist the final state."""
        if self._monitor is not None:
            await self._monitor.stop()
            self._monitor = None
        try:
            self.persist()
        except PromptPoolStorageError as e:
            logger.error(f"[PromptPool] Failed to persist on teardown: {e}")

    def _save_pool(self):
        """
        Best-effort save after a mutation; failures are logged.

        Writes at most once per ``save_interval`` seconds. A skipped write
        leaves the pool dirty until the next save, ``flush()`` or ``persist()``.
        """
        if self.store is None:
            return
        self._dirty = True
        last = self._last_save
        if last is not None and self._monotonic() - last < self.save_interval:
            return
        self.flush()

    def flush(self) -> bool:
        """Write pending pool changes now. Returns True if a write happened."""
        if self.store is None:
            return False
        with self._lock:
            if not self._dirty:
                return False
            try:
                self.store.save_pool(self._prompts)
            except PromptPoolStorageError as e:
                logger.error(f"[PromptPool] {e}")
                return False
            self._dirty = False
            self._last_save = self._monotonic()
            return True

    def migrate_usage_to_requests_if_needed(self) -> int:
        """
        Backfill request counters of legacy records.

        Records that only have a usage count (no total/success/failure
        counts) get ``total_requests = success_count = usage_count``. This
        treats historical usage as prior successes, which is a heuristic,
        not a verified fact about those requests.

        Returns:
            Number of migrated variants
        """
        migrated = 0
        with self._lock:
            for prompt in self._prompts:
                health = prompt.health_status
                if (health.total_requests == 0 and health.success_count == 0
                        and health.failure_count == 0 and prompt.usage_count > 0):
                    health.total_requests = prompt.usage_count
                    health.success_count = prompt.usage_count
                    migrated += 1
            if migrated:
                logger.info(f"[PromptPool] Backfilled request counters for {migrated} legacy variant(s)")
                self._save_pool()
        return migrated

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: PoolListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: PoolListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, events: Iterable[Tuple[str, PromptVariant]]):
        for event, prompt in events:
            for listener in list(self._listeners):
                try:
                    listener(event, prompt)
                except Exception as e:
                    logger.warning(f"[PromptPool] Listener failed on '{event}' for {prompt.name}: {e}")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_variations(self, variations: Iterable[Union[PromptVariant, Dict[str, Any]]]) -> List[PromptVariant]:
        """Append variants (objects or persisted dicts) in registration order."""
        added = [v if isinstance(v, PromptVariant) else PromptVariant.from_dict(v) for v in variations]
        with self._lock:
            known = {p.id for p in self._prompts}
            for variant in added:
                if variant.id in known:
                    raise ValueError(f"Duplicate prompt variant id: {variant.id}")
                known.add(variant.id)
            self._prompts.extend(added)
            self._save_pool()
        return added

    def get_prompt(self, prompt_id: str) -> Optional[PromptVariant]:
        with self._lock:
            return self._find(prompt_id)

    def get_all_prompts(self) -> List[PromptVariant]:
        with self._lock:
            return list(self._prompts)

    def get_active_prompts(self) -> List[PromptVariant]:
        """Variants eligible for traffic, in registration order."""
        with self._lock:
            return [p for p in self._prompts if p.is_eligible]

    def update_prompt(self, prompt_id: str, **changes) -> bool:
        with self._lock:
            prompt = self._find(prompt_id)
            if prompt is None:
                return False
            self._apply_changes(prompt, changes)
            self._save_pool()
            return True

    def update_prompts(self, prompt_ids: Iterable[str], **changes) -> bool:
        ids = set(prompt_ids)
        with self._lock:
            targets = [p for p in self._prompts if p.id in ids]
            for prompt in targets:
                self._apply_changes(prompt, changes)
            if targets:
                self._save_pool()
            return bool(targets)

    def delete_prompt(self, prompt_id: str) -> bool:
        with self._lock:
            prompt = self._find(prompt_id)
            if prompt is None:
                return False
            self._prompts.remove(prompt)
            self._pending.pop(prompt_id, None)
            self._save_pool()
            return True

    def clear_pool(self):
        with self._lock:
            self._prompts = []
            self._pending.clear()
            self._save_pool()

    def _find(self, prompt_id: str) -> Optional[PromptVariant]:
        for prompt in self._prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

    @staticmethod
    def _apply_changes(prompt: PromptVariant, changes: Dict[str, Any]):
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update prompt fields: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(prompt, key, value)

    # ------------------------------------------------------------------
    # Health state machine
    # ------------------------------------------------------------------

    def record_usage(
        self,
        prompt_id: str,
        success: bool,
        response_time_ms: float = 0,
        error: Optional[str] = None
    ) -> Optional[HealthState]:
        """
        Record the outcome of one request made with a variant.

        Args:
            prompt_id: Variant id (unknown ids are ignored)
            success: Whether the request succeeded
            response_time_ms: Request latency
            error: Error message for failures

        Returns:
            The variant's status after the update, or None if unknown
        """
        events: List[Tuple[str, PromptVariant]] = []
        with self._lock:
            prompt = self._find(prompt_id)
            if prompt is None:
                logger.debug(f"[PromptPool] record_usage for unknown prompt {prompt_id}, ignored")
                return None

            health = prompt.health_status
            now = self._clock()
            health.total_requests += 1
            health.last_used = now
            health.append_record(RequestRecord(
                timestamp=now,
                success=success,
                response_time_ms=response_time_ms,
                error=error,
                consecutive_failures_at_time=health.consecutive_failures,
            ))

            if success:
                health.success_count += 1
                health.consecutive_failures = 0
                health.last_success = now
                if health.status == HealthState.DEGRADED:
                    health.status = HealthState.HEALTHY
                    logger.info(f"[PromptPool] Prompt {prompt.name} recovered to healthy")
                    events.append((EVENT_RECOVERED, prompt))
            else:
                health.failure_count += 1
                health.consecutive_failures += 1
                health.last_failure = now
                logger.warning(
                    f"[PromptPool] Prompt {prompt.name} failed, consecutive failures: "
                    f"{health.consecutive_failures}"
                )
                events.extend(self._update_health_status(prompt, now))
                config = self._health_config
                if config.switch_on_failure and config.queue_management_enabled:
                    events.extend(self._handle_queue_replacement(prompt_id, now))

            health.recompute_average_response_time()
            self._save_pool()
            status = health.status

        self._notify(events)
        return status

    def _update_health_status(self, prompt: PromptVariant, now: datetime) -> List[Tuple[str, PromptVariant]]:
        health = prompt.health_status
        config = self._health_config

        if health.status == HealthState.DEACTIVATED:
            # A late failure from a request started before deactivation
            return []

        if config.deactivation_enabled and health.consecutive_failures >= config.max_consecutive_failures:
            health.status = HealthState.DEACTIVATED
            health.deactivated_at = now
            health.deactivation_reason = f"{health.consecutive_failures} consecutive failures"
            prompt.is_active = False
            logger.warning(f"[PromptPool] Prompt {prompt.name} deactivated: {health.deactivation_reason}")
            return [(EVENT_DEACTIVATED, prompt)]

        if health.consecutive_failures >= config.degradation_threshold and health.status == HealthState.HEALTHY:
            health.status = HealthState.DEGRADED
            logger.warning(f"[PromptPool] Prompt {prompt.name} degraded")
            return [(EVENT_DEGRADED, prompt)]

        return []

    # ------------------------------------------------------------------
    # Pending request queues
    # ------------------------------------------------------------------

    def enqueue_request(self, prompt_id: str, request_id: str, **meta) -> PendingRequest:
        """Register a request that will run with ``prompt_id`` but has not started."""
        with self._lock:
            request = PendingRequest(
                request_id=request_id,
                prompt_id=prompt_id,
                enqueued_at=self._clock(),
                meta=dict(meta),
            )
            self._pending.setdefault(prompt_id, []).append(request)
            return request

    def dequeue_request(self, prompt_id: str, request_id: str) -> Optional[PendingRequest]:
        """
        Remove a request when it starts (or finishes).

        The request is looked up under ``prompt_id`` first, then in every
        queue, since it may have been migrated to another variant meanwhile.

        Returns:
            The removed request (its ``prompt_id`` is the current assignment),
            or None if it was not queued
        """
        with self._lock:
            queue_ids = [prompt_id] + [pid for pid in self._pending if pid != prompt_id]
            for pid in queue_ids:
                queue = self._pending.get(pid)
                if not queue:
                    continue
                for request in queue:
                    if request.request_id == request_id:
                        queue.remove(request)
                        if not queue:
                            del self._pending[pid]
                        return request
            return None

    def pending_requests(self, prompt_id: str) -> List[PendingRequest]:
        with self._lock:
            return list(self._pending.get(prompt_id, []))

    def find_pending_request(self, request_id: str) -> Optional[PendingRequest]:
        with self._lock:
            for queue in self._pending.values():
                for request in queue:
                    if request.request_id == request_id:
                        return request
            return None

    def _handle_queue_replacement(self, failed_prompt_id: str, now: datetime) -> List[Tuple[str, PromptVariant]]:
        pending = self._pending.get(failed_prompt_id)
        if not pending:
            return []

        new_prompt = self.select_healthy_prompt(exclude_prompt_id=failed_prompt_id)
        if new_prompt is None:
            logger.warning(
                f"[PromptPool] No healthy prompt available to replace {failed_prompt_id}; "
                f"{len(pending)} request(s) stay queued"
            )
            return []

        logger.info(
            f"[PromptPool] Moving {len(pending)} queued request(s) from {failed_prompt_id} to {new_prompt.id}"
        )
        for request in pending:
            request.prompt_id = new_prompt.id
            request.replaced_from = failed_prompt_id
            request.replaced_at = now
        self._pending.setdefault(new_prompt.id, []).extend(pending)
        del self._pending[failed_prompt_id]
        return [(EVENT_REQUESTS_MIGRATED, new_prompt)]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def calculate_prompt_weights(self, prompts: List[PromptVariant]) -> List[Tuple[PromptVariant, float]]:
        """
        Weight = health x success rate x latency, floored at 0.1.

        - health: 1.0 healthy, 0.5 degraded
        - success rate: 0.5 + success/total (1.0 without history)
        - latency: max(0.1, 1 - avg_response_time / 10s) (1.0 without data)
        """
        weighted = []
        for prompt in prompts:
            health = prompt.health_status
            weight = 1.0
            if health.status == HealthState.DEGRADED:
                weight *= 0.5
            if health.total_requests > 0:
                weight *= 0.5 + health.success_count / health.total_requests
            if health.average_response_time > 0:
                weight *= max(0.1, 1 - health.average_response_time / LATENCY_BASELINE_MS)
            weighted.append((prompt, max(0.1, weight)))
        return weighted

    def weighted_random_select(self, weighted: List[Tuple[PromptVariant, float]]) -> Optional[PromptVariant]:
        """Cumulative-weight roulette."""
        if not weighted:
            return None
        if len(weighted) == 1:
            return weighted[0][0]
        total = sum(w for _, w in weighted)
        remaining = self._rng.random() * total
        for prompt, weight in weighted:
            remaining -= weight
            if remaining <= 0:
                return prompt
        return weighted[-1][0]

    def get_random_active_prompt(self) -> Optional[PromptVariant]:
        """Weighted random pick among eligible variants; bumps its usage count."""
        with self._lock:
            selected = self.weighted_random_select(self.calculate_prompt_weights(self.get_active_prompts()))
            if selected is not None:
                self._mark_selected(selected)
            return selected

    def get_rotation_active_prompt(self) -> Optional[PromptVariant]:
        """Healthiest, least used eligible variant; bumps its usage count."""
        with self._lock:
            active = self.get_active_prompts()
            if not active:
                return None
            # sorted() is stable: ties keep registration order
            ordered = sorted(active, key=lambda p: (HEALTH_PRIORITY[p.status], p.usage_count))
            selected = ordered[0]
            self._mark_selected(selected)
            return selected

    def select_prompt(self, strategy: Union[SelectionStrategy, str] = SelectionStrategy.WEIGHTED) -> Optional[PromptVariant]:
        """Pick a variant with the given strategy, None when nothing is eligible."""
        strategy = SelectionStrategy(strategy)
        if strategy == SelectionStrategy.ROTATION:
            return self.get_rotation_active_prompt()
        return self.get_random_active_prompt()

    def require_prompt(self, strategy: Union[SelectionStrategy, str] = SelectionStrategy.WEIGHTED) -> PromptVariant:
        """Like ``select_prompt`` but fails fast when the pool is exhausted."""
        selected = self.select_prompt(strategy)
        if selected is None:
            stats = self.get_health_stats()
            raise PromptPoolExhaustedError(
                "No eligible prompt variant: select at least one prompt or wait for resurrection",
                context={'total': stats['total'], 'deactivated': stats['deactivated']},
            )
        return selected

    def select_healthy_prompt(self, exclude_prompt_id: Optional[str] = None) -> Optional[PromptVariant]:
        """
        Best replacement variant, without counting it as used.

        Prefers fully healthy variants by success rate; falls back to the
        degraded variant with the most successes.
        """
        with self._lock:
            candidates = [p for p in self.get_active_prompts() if p.id != exclude_prompt_id]
            if not candidates:
                return None
            healthy = [p for p in candidates if p.status == HealthState.HEALTHY]
            if healthy:
                def rate(p):
                    r = p.health_status.success_rate
                    return 1.0 if r is None else r
                return sorted(healthy, key=rate, reverse=True)[0]
            return sorted(candidates, key=lambda p: p.health_status.success_count, reverse=True)[0]

    def _mark_selected(self, prompt: PromptVariant):
        prompt.usage_count += 1
        self._save_pool()

    # ------------------------------------------------------------------
    # Resurrection
    # ------------------------------------------------------------------

    def check_for_resurrection(self) -> List[str]:
        """
        Resurrect every deactivated variant whose cooldown has elapsed.

        Returns:
            Ids of the resurrected variants
        """
        with self._lock:
            now = self._clock()
            cooldown = timedelta(minutes=self._health_config.resurrection_time_minutes)
            due = [
                p.id for p in self._prompts
                if p.status == HealthState.DEACTIVATED
                and p.health_status.deactivated_at is not None
                and now - p.health_status.deactivated_at >= cooldown
            ]
        for prompt_id in due:
            self.resurrect_prompt(prompt_id)
        return due

    def resurrect_prompt(self, prompt_id: str) -> bool:
        """Reset a variant to healthy; it gets traffic again only if user-selected."""
        with self._lock:
            prompt = self._find(prompt_id)
            if prompt is None:
                return False
            self._reset_health(prompt)
            if prompt.user_selected is True:
                prompt.is_active = True
            logger.info(f"[PromptPool] Prompt {prompt.name} resurrected")
            self._save_pool()
        self._notify([(EVENT_RESURRECTED, prompt)])
        return True

    def resurrect_prompts(self, prompt_ids: Iterable[str]) -> int:
        return sum(1 for prompt_id in prompt_ids if self.resurrect_prompt(prompt_id))

    def reactivate_prompt(self, prompt_id: str) -> bool:
        """Manual reactivation: select the variant and put it back in service."""
        with self._lock:
            prompt = self._find(prompt_id)
            if prompt is None:
                return False
            self._reset_health(prompt)
            prompt.user_selected = True
            prompt.is_active = True
            logger.info(f"[PromptPool] Prompt {prompt.name} manually reactivated")
            self._save_pool()
        self._notify([(EVENT_RESURRECTED, prompt)])
        return True

    @staticmethod
    def _reset_health(prompt: PromptVariant):
        health = prompt.health_status
        health.status = HealthState.HEALTHY
        health.consecutive_failures = 0
        health.deactivated_at = None
        health.deactivation_reason = None

    # ------------------------------------------------------------------
    # Config & stats
    # ------------------------------------------------------------------

    def get_health_config(self) -> HealthConfig:
        return self._health_config

    def update_health_config(self, **changes) -> HealthConfig:
        """Update config fields (snake_case names) and persist them."""
        with self._lock:
            unknown = [k for k in changes if k not in HealthConfig._KEYS]
            if unknown:
                raise ValueError(f"Unknown health config field(s): {', '.join(unknown)}")
            changes = {key: HealthConfig.coerce(key, value) for key, value in changes.items()}
            for key, value in changes.items():
                setattr(self._health_config, key, value)
            if self.store is not None:
                try:
                    self.store.save_health_config(self._health_config)
                except PromptPoolStorageError as e:
                    logger.error(f"[PromptPool] {e}")
            return self._health_config

    def get_health_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = {
                'total': len(self._prompts),
                'active': 0,
                'healthy': 0,
                'degraded': 0,
                'deactivated': 0,
                'total_requests': 0,
                'total_successes': 0,
                'total_failures': 0,
                'average_success_rate': 0.0,
            }
            for prompt in self._prompts:
                if prompt.is_active and prompt.user_selected is True:
                    stats['active'] += 1
                stats[prompt.status.value] += 1
                health = prompt.health_status
                stats['total_requests'] += health.total_requests
                stats['total_successes'] += health.success_count
                stats['total_failures'] += health.failure_count
            if stats['total_requests'] > 0:
                stats['average_success_rate'] = stats['total_successes'] / stats['total_requests']
            return stats
