import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from gateway_router.config import settings
from gateway_router.models import GatewayDescriptor, GatewayHealth

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OutcomeRecord:
    timestamp: datetime
    success: bool


@dataclass
class GatewayHealthState:
    """Outcome history and circuit breaker state for a single gateway."""

    outcomes: list[OutcomeRecord] = field(default_factory=list)
    disabled_until: Optional[datetime] = None

    def outcomes_since(self, since: datetime) -> list[OutcomeRecord]:
        return [o for o in self.outcomes if o.timestamp >= since]


class HealthTracker:
    """Tracks per-gateway success rates over a trailing time window and trips
    a circuit breaker when a gateway falls below the success-rate threshold.

    A tripped gateway stays excluded until ``disabled_until`` passes. Expiry is
    lazy: the timestamp is compared against the clock on every read and cleared
    once it has elapsed, so no background sweeper is needed.

    Thread-safe: every read and write of outcome histories and disable
    timestamps happens under a single lock.
    """

    def __init__(
        self,
        gateways: Iterable[GatewayDescriptor],
        window_minutes: float = settings.health_window_minutes,
        cooldown_minutes: float = settings.cooldown_minutes,
        success_rate_threshold: float = settings.success_rate_threshold,
        min_sample_size: int = settings.min_sample_size,
        clock: Clock = utcnow,
    ):
        self._gateways = list(gateways)
        self.window = timedelta(minutes=window_minutes)
        self.cooldown_minutes = cooldown_minutes
        self.success_rate_threshold = success_rate_threshold
        self.min_sample_size = min_sample_size
        self._clock = clock
        self._states = {g.name: GatewayHealthState() for g in self._gateways}
        self._lock = threading.Lock()

    def record(self, gateway: str, success: bool):
        with self._lock:
            state = self._states.get(gateway)
            if state is None:
                logger.debug("Ignoring outcome for unknown gateway %s", gateway)
                return
            now = self._clock()
            state.outcomes.append(OutcomeRecord(timestamp=now, success=success))
            logger.debug(
                "Recorded %s for gateway %s (%d records held)",
                "success" if success else "failure",
                gateway,
                len(state.outcomes),
            )
            if not success:
                self._evaluate(gateway, state, now)

    def is_healthy(self, gateway: str) -> bool:
        with self._lock:
            return self._is_healthy(gateway, self._clock())

    def healthy_set(self) -> list[str]:
        """Names of enabled gateways that are not circuit-open, in configured order."""
        with self._lock:
            now = self._clock()
            return [
                g.name
                for g in self._gateways
                if g.enabled and self._is_healthy(g.name, now)
            ]

    def stats(self, gateway: str) -> GatewayHealth:
        with self._lock:
            return self._stats(gateway, self._clock())

    def all_stats(self) -> list[GatewayHealth]:
        with self._lock:
            now = self._clock()
            return [self._stats(g.name, now) for g in self._gateways]

    def disable(self, gateway: str, minutes: Optional[float] = None):
        if minutes is None:
            minutes = self.cooldown_minutes
        with self._lock:
            state = self._states.get(gateway)
            if state is None:
                logger.debug("Ignoring disable for unknown gateway %s", gateway)
                return
            state.disabled_until = self._clock() + timedelta(minutes=minutes)
            logger.info(
                "Gateway %s manually disabled until %s",
                gateway,
                state.disabled_until.isoformat(),
            )

    def enable(self, gateway: str):
        with self._lock:
            state = self._states.get(gateway)
            if state is None:
                logger.debug("Ignoring enable for unknown gateway %s", gateway)
                return
            state.disabled_until = None
            logger.info("Gateway %s manually enabled", gateway)

    def reset_all(self):
        with self._lock:
            for state in self._states.values():
                state.outcomes.clear()
                state.disabled_until = None
        logger.info("All gateway health stats reset")

    def prune(self) -> int:
        """Drop outcome records older than twice the health window.

        Housekeeping only; meant to be called periodically by the hosting
        service. Returns the number of records removed.
        """
        with self._lock:
            cutoff = self._clock() - 2 * self.window
            removed = 0
            for state in self._states.values():
                kept = state.outcomes_since(cutoff)
                removed += len(state.outcomes) - len(kept)
                state.outcomes = kept
        logger.info("Pruned %d outcome records older than %s", removed, cutoff.isoformat())
        return removed

    # --- Internals, caller must hold self._lock ---

    def _is_healthy(self, gateway: str, now: datetime) -> bool:
        state = self._states.get(gateway)
        if state is None or state.disabled_until is None:
            return True
        if now >= state.disabled_until:
            state.disabled_until = None
            logger.info("Gateway %s re-enabled after cooldown period", gateway)
            return True
        return False

    def _stats(self, gateway: str, now: datetime) -> GatewayHealth:
        state = self._states.get(gateway, GatewayHealthState())
        is_healthy = self._is_healthy(gateway, now)
        window = state.outcomes_since(now - self.window)
        successes = sum(1 for o in window if o.success)
        failures = len(window) - successes
        last_failure = max((o.timestamp for o in window if not o.success), default=None)
        return GatewayHealth(
            name=gateway,
            is_healthy=is_healthy,
            # No recent traffic means nothing to hold against the gateway.
            success_rate=successes / len(window) if window else 1.0,
            total_requests=len(window),
            success_count=successes,
            failure_count=failures,
            disabled_until=state.disabled_until,
            last_failure_at=last_failure,
        )

    def _evaluate(self, gateway: str, state: GatewayHealthState, now: datetime):
        window = state.outcomes_since(now - self.window)
        total = len(window)
        if total < self.min_sample_size:
            logger.debug(
                "Not enough requests for health check on %s (%d < %d)",
                gateway,
                total,
                self.min_sample_size,
            )
            return

        success_rate = sum(1 for o in window if o.success) / total
        if success_rate < self.success_rate_threshold:
            state.disabled_until = now + timedelta(minutes=self.cooldown_minutes)
            logger.warning(
                "Gateway %s disabled until %s: success rate %.2f%% below threshold %.2f%% "
                "over %d requests",
                gateway,
                state.disabled_until.isoformat(),
                success_rate * 100,
                self.success_rate_threshold * 100,
                total,
            )
