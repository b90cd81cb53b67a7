"""Resync loop that triggers reconcile passes.

The controller supplies the guarantees the reconciler relies on:

1. At most one pass per key: a key whose previous pass is still running,
   including a pass abandoned after its timeout, is not triggered again.
2. Timeouts: a pass that exceeds ``pass_timeout_seconds`` is abandoned and
   the key is re-queued. The worker thread is left to finish on its own;
   the status it writes is picked up by the next pass.
3. Requeue on error with exponential backoff and jitter.
4. Status write-back after every pass (and after every checkpoint).

Blocking SDK calls run in a thread pool, so the event loop stays free to
handle shutdown signals.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import random
import time
from dataclasses import dataclass

from .cloud import CloudClientFactory
from .config import Config
from .models import LifecycleState, NetworkStatus
from .provenance import get_provenance_logger
from .reconciler import NetworkReconciler, ReconcileOutcome
from .store import SpecStore, SpecStoreError

logger = logging.getLogger(__name__)

MAX_WORKER_THREADS = 4
MIN_SLEEP_SECONDS = 1.0


class PassTimeoutError(Exception):
    """Raised when a pass exceeds its timeout and is abandoned."""

    pass


@dataclass
class PassResult:
    """Outcome of one triggered pass, as seen by the controller."""

    key: str
    outcome: ReconcileOutcome | None = None
    error: Exception | None = None
    skipped: bool = False

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        return self.outcome is None or self.outcome.success


class Controller:
    """Periodically reconciles every key in the store."""

    def __init__(
        self,
        config: Config,
        store: SpecStore,
        client_factory: CloudClientFactory,
    ) -> None:
        self._config = config
        self._store = store
        self._client_factory = client_factory
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=MAX_WORKER_THREADS,
            thread_name_prefix="reconcile",
        )
        self._in_flight: dict[str, concurrent.futures.Future[PassResult]] = {}
        self._next_due: dict[str, float] = {}
        self._failures: dict[str, int] = {}
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> Config:
        return self._config

    def failure_count(self, key: str) -> int:
        return self._failures.get(key, 0)

    def next_due(self, key: str) -> float:
        return self._next_due.get(key, 0.0)

    def trigger(self, key: str) -> None:
        """Make ``key`` due immediately, ignoring any pending backoff."""
        self._next_due[key] = 0.0

    def shutdown(self) -> None:
        """Signal the loop to stop after the current pass."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def close(self) -> None:
        """Stop the worker pool, letting running passes persist their status."""
        self._executor.shutdown(wait=True, cancel_futures=True)

    async def run(self) -> None:
        """Run resync cycles until shutdown."""
        logger.info(
            "Starting controller",
            extra={
                "specs_dir": str(self._config.specs_dir),
                "status_dir": str(self._config.status_dir),
                "interval_seconds": self._config.reconcile_interval_seconds,
                "pass_timeout_seconds": self._config.pass_timeout_seconds,
            },
        )
        try:
            while not self._shutdown_event.is_set():
                await self.run_cycle()

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._seconds_until_next_due(),
                    )
                except TimeoutError:
                    pass
        finally:
            self.close()

    async def run_cycle(self) -> list[PassResult]:
        """Trigger every key that is due, one at a time."""
        try:
            keys = self._store.list_keys()
        except SpecStoreError as e:
            logger.error("Failed to list manifests", extra={"error": str(e)})
            return []

        # Forget keys whose manifests are gone
        for key in set(self._next_due) - set(keys):
            self._next_due.pop(key, None)
            self._failures.pop(key, None)

        results = []
        now = time.monotonic()
        for key in keys:
            if self._shutdown_event.is_set():
                break
            if self.next_due(key) > now:
                continue
            results.append(await self.reconcile_key(key))
        return results

    async def reconcile_key(self, key: str) -> PassResult:
        """Run one pass for ``key`` with timeout and requeue handling."""
        previous = self._in_flight.get(key)
        if previous is not None and not previous.done():
            logger.warning("Previous pass still running, skipping", extra={"key": key})
            return PassResult(key=key, skipped=True)

        future = self._executor.submit(self._run_pass, key)
        self._in_flight[key] = future

        try:
            result = await asyncio.wait_for(
                asyncio.shield(asyncio.wrap_future(future)),
                timeout=self._config.pass_timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                "Reconcile pass timed out, abandoning",
                extra={"key": key, "timeout_seconds": self._config.pass_timeout_seconds},
            )
            result = PassResult(
                key=key,
                error=PassTimeoutError(
                    f"Pass for '{key}' exceeded {self._config.pass_timeout_seconds}s"
                ),
            )
        except Exception as e:
            logger.exception("Unexpected error during reconcile pass", extra={"key": key})
            result = PassResult(key=key, error=e)

        self._schedule(result)
        return result

    def _run_pass(self, key: str) -> PassResult:
        """Load, reconcile and persist one key. Runs in a worker thread."""
        try:
            spec, status = self._store.get_spec_and_status(key)
            deletion_requested = self._store.deletion_requested(key)
        except SpecStoreError as e:
            logger.error("Failed to load manifest", extra={"key": key, "error": str(e)})
            return PassResult(key=key, error=e)

        if deletion_requested and status.state == LifecycleState.DELETED and not status.vpc_id:
            logger.debug("Network already deleted", extra={"key": key})
            return PassResult(key=key, skipped=True)

        def checkpoint(progress: NetworkStatus) -> None:
            self._store.update_status(key, progress)

        reconciler = NetworkReconciler(self._client_factory(spec.region), checkpoint=checkpoint)

        started = time.monotonic()
        try:
            if deletion_requested:
                outcome = reconciler.delete(status)
            else:
                outcome = reconciler.reconcile(spec, status)
        except SpecStoreError as e:
            # A checkpoint could not be written; the cloud may be ahead of the status file
            logger.error("Failed to persist progress", extra={"key": key, "error": str(e)})
            return PassResult(key=key, error=e)
        duration = time.monotonic() - started

        try:
            self._store.update_status(key, outcome.status)
        except SpecStoreError as e:
            logger.error("Failed to persist status", extra={"key": key, "error": str(e)})
            return PassResult(key=key, outcome=outcome, error=e)

        if self._config.enable_audit_logging:
            provenance_logger = get_provenance_logger()
            provenance_logger.log_provenance(
                provenance_logger.record(key, status, outcome, duration)
            )

        return PassResult(key=key, outcome=outcome)

    def _schedule(self, result: PassResult) -> None:
        now = time.monotonic()
        key = result.key

        if result.skipped and result.error is None and result.outcome is None:
            # Skipped because a pass is still running: look again next cycle
            self._next_due[key] = now + self._config.reconcile_interval_seconds
            return

        if result.success:
            self._failures.pop(key, None)
            self._next_due[key] = now + self._config.reconcile_interval_seconds
            return

        attempts = self._failures.get(key, 0) + 1
        self._failures[key] = attempts
        delay = self.backoff_seconds(attempts)
        self._next_due[key] = now + delay

        error = result.error or (result.outcome.error if result.outcome else None)
        logger.warning(
            "Reconcile pass failed, requeued",
            extra={
                "key": key,
                "attempt": attempts,
                "requeue_seconds": round(delay, 2),
                "error": str(error),
            },
        )

    def backoff_seconds(self, attempt: int) -> float:
        """Exponential backoff with up to 20% jitter, capped at the configured maximum."""
        base = self._config.requeue_backoff_base_seconds
        backoff = min(base * (2 ** (attempt - 1)), self._config.requeue_backoff_max_seconds)
        return backoff + random.uniform(0, backoff * 0.2)

    def _seconds_until_next_due(self) -> float:
        interval = float(self._config.reconcile_interval_seconds)
        if not self._next_due:
            return interval
        earliest = min(self._next_due.values()) - time.monotonic()
        return max(MIN_SLEEP_SECONDS, min(interval, earliest))
