"""
src/engine/guard.py
Circuit breaker for re-entrant rule execution, plus the webhook intake throttle.
Exports: ExecutionGuard, GuardSettings, GuardDecision, WebhookThrottle, relevant_fields_hash
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import threading
from typing import Any, Callable

from src.rules.types import RuleDefinition, WorkItemContext

logger = logging.getLogger(__name__)

RELEVANT_FIELDS = ("System_State", "System_AssignedTo", "System_AreaPath", "System_Title")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _hour_bucket(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


def relevant_fields_hash(fields: dict[str, Any]) -> str:
    """Hash the trigger-relevant fields, independent of map order."""
    parts = sorted(
        f"{name}={'' if fields.get(name) is None else fields.get(name)}"
        for name in RELEVANT_FIELDS
        if name in fields
    )
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class GuardSettings:
    min_interval: timedelta = timedelta(seconds=5)
    max_per_hour: int = 20
    duplicate_window: timedelta = timedelta(seconds=10)
    sweep_interval: timedelta = timedelta(minutes=5)
    retention: timedelta = timedelta(minutes=30)
    max_entries: int = 500


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: str = ""


class ExecutionGuard:
    """
    Per (rule, work item) admission control shared by all events in the process.

    A pair is admitted only when it has not run within the minimum interval,
    has not hit the hourly cap, and is not a same-fields duplicate inside the
    duplicate window. Admission reserves the pair until the caller either
    records the run or releases it, so concurrent events for the same pair
    cannot both be admitted. Bookkeeping maps are bounded by periodic sweeps.
    """

    def __init__(self, settings: GuardSettings | None = None, clock: Clock | None = None):
        self.settings = settings or GuardSettings()
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self._last_run: dict[tuple[str, int], datetime] = {}
        self._hourly: dict[tuple[str, int, datetime], int] = {}
        self._hashes: dict[tuple[str, int], str] = {}
        self._in_flight: dict[tuple[str, int], str] = {}
        self._last_sweep = self._clock()

    def check(self, rule_name: str, context: WorkItemContext) -> GuardDecision:
        """Return whether one rule may run for this work item now."""
        with self._lock:
            return self._check_locked(rule_name, context, self._clock())

    def filter_rules(
        self, rules: list[RuleDefinition], context: WorkItemContext
    ) -> tuple[list[RuleDefinition], list[tuple[RuleDefinition, str]]]:
        """
        Split rules into admitted and blocked lists.

        Args:
            rules: Applicable expression rules in priority order.
            context: Current work-item context.
        Returns:
            (admitted rules, [(blocked rule, reason), ...]) preserving order.
            Each admitted rule stays reserved until record() or release().
        """
        self.maybe_sweep()
        admitted: list[RuleDefinition] = []
        blocked: list[tuple[RuleDefinition, str]] = []
        with self._lock:
            now = self._clock()
            admission_hash = relevant_fields_hash(context.fields)
            for rule in rules:
                decision = self._check_locked(rule.name, context, now)
                if decision.allowed:
                    self._in_flight[(rule.name, context.id)] = admission_hash
                    admitted.append(rule)
                else:
                    blocked.append((rule, decision.reason))
        for rule, reason in blocked:
            logger.info("Guard blocked rule %s for work item %s: %s", rule.name, context.id, reason)
        return admitted, blocked

    def record(self, rule_name: str, context: WorkItemContext) -> None:
        """
        Record a successful execution of one rule for this work item.

        The stored hash is the one captured at admission, so field writes made
        by the rule's own actions do not defeat the duplicate window.
        """
        with self._lock:
            now = self._clock()
            key = (rule_name, context.id)
            admitted_hash = self._in_flight.pop(key, None)
            self._last_run[key] = now
            bucket_key = (rule_name, context.id, _hour_bucket(now))
            self._hourly[bucket_key] = self._hourly.get(bucket_key, 0) + 1
            self._hashes[key] = (
                admitted_hash if admitted_hash is not None else relevant_fields_hash(context.fields)
            )
            if self._total_entries() > 2 * self.settings.max_entries:
                logger.warning("Guard state above twice the cap; forcing sweep.")
                self._sweep_locked(now)

    def release(self, rule_name: str, context: WorkItemContext) -> None:
        """Drop an admission reservation without recording a run."""
        with self._lock:
            self._in_flight.pop((rule_name, context.id), None)

    def maybe_sweep(self) -> bool:
        """Sweep when the sweep interval has elapsed. Returns whether it ran."""
        with self._lock:
            now = self._clock()
            if now - self._last_sweep < self.settings.sweep_interval:
                return False
            self._sweep_locked(now)
            return True

    def sweep(self) -> None:
        """Run an eviction sweep immediately."""
        with self._lock:
            self._sweep_locked(self._clock())

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "last_run_entries": len(self._last_run),
                "hourly_entries": len(self._hourly),
                "hash_entries": len(self._hashes),
                "in_flight": len(self._in_flight),
                "last_sweep": self._last_sweep.isoformat(),
            }

    def _check_locked(self, rule_name: str, context: WorkItemContext, now: datetime) -> GuardDecision:
        key = (rule_name, context.id)
        if key in self._in_flight:
            return GuardDecision(False, "execution already in progress")
        last = self._last_run.get(key)
        if last is not None and now - last < self.settings.min_interval:
            elapsed = (now - last).total_seconds()
            return GuardDecision(
                False,
                f"executed {elapsed:.1f}s ago (minimum interval "
                f"{self.settings.min_interval.total_seconds():.0f}s)",
            )
        count = self._hourly.get((rule_name, context.id, _hour_bucket(now)), 0)
        if count >= self.settings.max_per_hour:
            return GuardDecision(
                False, f"hourly limit reached ({count}/{self.settings.max_per_hour})"
            )
        if (
            last is not None
            and now - last < self.settings.duplicate_window
            and self._hashes.get(key) == relevant_fields_hash(context.fields)
        ):
            return GuardDecision(False, "duplicate event with unchanged relevant fields")
        return GuardDecision(True)

    def _total_entries(self) -> int:
        return len(self._last_run) + len(self._hourly) + len(self._hashes)

    def _sweep_locked(self, now: datetime) -> None:
        before = self._total_entries()
        cap = self.settings.max_entries
        keep = max(cap // 2, 1)

        cutoff = now - self.settings.retention
        self._last_run = {k: v for k, v in self._last_run.items() if v >= cutoff}

        live_buckets = {_hour_bucket(now), _hour_bucket(now) - timedelta(hours=1)}
        self._hourly = {k: v for k, v in self._hourly.items() if k[2] in live_buckets}

        if len(self._last_run) > cap:
            newest = sorted(self._last_run.items(), key=lambda item: item[1], reverse=True)[:keep]
            self._last_run = dict(newest)
        if len(self._hourly) > cap:
            newest = sorted(self._hourly.items(), key=lambda item: item[0][2], reverse=True)[:keep]
            self._hourly = dict(newest)

        self._hashes = {k: v for k, v in self._hashes.items() if k in self._last_run}
        if len(self._hashes) > cap:
            ranked = sorted(self._hashes, key=lambda k: self._last_run[k], reverse=True)[:keep]
            self._hashes = {k: self._hashes[k] for k in ranked}

        self._last_sweep = now
        after = self._total_entries()
        if before != after:
            logger.info("Guard sweep evicted %s entries (%s remaining).", before - after, after)


class WebhookThrottle:
    """Accept the same work item at most once per minimum interval."""

    def __init__(
        self,
        min_interval: timedelta = timedelta(seconds=5),
        max_entries: int = 500,
        clock: Clock | None = None,
    ):
        self.min_interval = min_interval
        self.max_entries = max_entries
        self._clock = clock or _utc_now
        self._lock = threading.Lock()
        self._seen: dict[int, datetime] = {}

    def allow(self, work_item_id: int) -> bool:
        with self._lock:
            now = self._clock()
            last = self._seen.get(work_item_id)
            if last is not None and now - last < self.min_interval:
                return False
            self._seen[work_item_id] = now
            if len(self._seen) > self.max_entries:
                self._prune_locked(now)
            return True

    def _prune_locked(self, now: datetime) -> None:
        cutoff = now - self.min_interval
        self._seen = {k: v for k, v in self._seen.items() if v >= cutoff}
        if len(self._seen) > self.max_entries:
            newest = sorted(self._seen.items(), key=lambda item: item[1], reverse=True)
            self._seen = dict(newest[: max(self.max_entries // 2, 1)])
