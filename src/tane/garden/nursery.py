"""Background poller that hands pending seeds to the gardener."""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Iterator
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from tane.garden.gardener import Gardener
from tane.garden.models import GrowOutcome, SeedStatus
from tane.garden.repository import GardenRepository

logger = logging.getLogger(__name__)

STALE_RECOVERY_INTERVAL_SECONDS = 60.0


@dataclass(slots=True)
class NurseryRunSummary:
    """Counters accumulated across nursery ticks."""

    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    crashed: int = 0
    recovered: int = 0
    idle_polls: int = 0
    saturated_polls: int = 0


class Nursery:
    """Poll for pending seeds and grow them on a bounded worker pool.

    A seed is claimed (``pending -> processing``) before it is submitted, so
    two pollers sharing a database never claim the same pending seed. Stale
    recovery requeues any seed left in ``processing`` longer than
    ``stale_processing_seconds``, including one another process is still
    growing, so that threshold must exceed the longest agent run. At most
    ``max_concurrent_growers`` seeds are in flight; while the pool is full
    the nursery stops claiming and the remaining seeds wait in ``pending``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: GardenRepository,
        gardener: Gardener,
        poll_interval_seconds: float = 2.0,
        max_concurrent_growers: int = 4,
        stale_processing_seconds: int = 3_600,
        shutdown_grace_seconds: float = 30.0,
    ) -> None:
        if max_concurrent_growers <= 0:
            raise ValueError("max_concurrent_growers must be a positive integer.")
        self.repository = repository
        self.gardener = gardener
        self.poll_interval_seconds = poll_interval_seconds
        self.max_concurrent_growers = max_concurrent_growers
        self.stale_processing_seconds = stale_processing_seconds
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.summary = NurseryRunSummary()

        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_growers,
            thread_name_prefix="tane-gardener",
        )
        self._in_flight: dict[str, Future[GrowOutcome]] = {}
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._closed = False
        self._next_recovery_at = 0.0

    @property
    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._in_flight)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> str | None:
        """Claim at most one pending seed and submit it; return its id."""

        if self._stop_event.is_set():
            return None

        self._recover_stale_seeds()
        with self._lock:
            in_flight = len(self._in_flight)
        if in_flight >= self.max_concurrent_growers:
            self.summary.saturated_polls += 1
            return None

        seed = self.repository.claim_next_pending_seed()
        if seed is None:
            self.summary.idle_polls += 1
            return None

        logger.info("Nursery: found pending seed %s", seed.id)
        try:
            future = self._executor.submit(self.gardener.cultivate, seed)
        except RuntimeError:
            # Executor already shut down; hand the seed back.
            self.repository.transition_status(
                seed_id=seed.id,
                expected=SeedStatus.PROCESSING,
                target=SeedStatus.PENDING,
            )
            logger.warning("Nursery: closed before seed %s could be grown, released", seed.id)
            return None

        with self._lock:
            self._in_flight[seed.id] = future
        self.summary.dispatched += 1
        future.add_done_callback(lambda done, seed_id=seed.id: self._on_grow_done(seed_id, done))
        return seed.id

    def start(self) -> None:
        """Run the polling loop on a daemon thread."""

        if self._closed:
            raise RuntimeError("Nursery has been stopped and cannot be restarted.")
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_forever,
            name="tane-nursery",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Nursery: polling every %.1fs with up to %d concurrent growers",
            self.poll_interval_seconds,
            self.max_concurrent_growers,
        )

    def stop(self, *, grace_seconds: float | None = None) -> bool:
        """Stop polling and wait for in-flight growth.

        Returns ``True`` when every in-flight seed finished inside the grace
        period. Seeds still growing afterwards stay ``processing`` and are
        picked up by stale recovery on a later start.
        """

        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self.poll_interval_seconds, 1.0) + 1.0)
            self._thread = None

        drained = self.drain(timeout=grace)
        if not drained:
            logger.warning(
                "Nursery: %d seed(s) still growing after %.1fs grace: %s",
                len(self.in_flight),
                grace,
                ", ".join(self.in_flight),
            )
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._closed = True
        logger.info("Nursery: stopped")
        return drained

    def drain(self, *, timeout: float | None = None) -> bool:
        """Wait until no seed is in flight."""

        with self._idle:
            return self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)

    def run_loop(
        self,
        *,
        max_seeds: int | None = None,
        max_idle_polls: int | None = None,
    ) -> NurseryRunSummary:
        """Poll in the foreground until stopped.

        Args:
            max_seeds: Stop claiming after this many seeds (None = unlimited).
            max_idle_polls: Exit after this many consecutive empty polls
                (None = keep polling until a signal arrives).
        """

        consecutive_idle = 0
        with self._signal_handlers():
            while not self._stop_event.is_set():
                if max_seeds is not None and self.summary.dispatched >= max_seeds:
                    break
                try:
                    seed_id = self.tick()
                except Exception:  # noqa: BLE001
                    logger.exception("Nursery: poll failed")
                    seed_id = None

                if seed_id is not None:
                    consecutive_idle = 0
                    continue
                if len(self.in_flight) >= self.max_concurrent_growers:
                    self._sleep_with_stop(min(self.poll_interval_seconds, 0.5))
                    continue
                consecutive_idle += 1
                if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                    break
                self._sleep_with_stop(self.poll_interval_seconds)

            grace = self.shutdown_grace_seconds if self._stop_event.is_set() else None
            self.drain(timeout=grace)
        return self.summary

    def _poll_forever(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:  # noqa: BLE001
                logger.exception("Nursery: poll failed")
            self._stop_event.wait(self.poll_interval_seconds)

    def _recover_stale_seeds(self) -> None:
        if self.stale_processing_seconds <= 0:
            return
        now = time.monotonic()
        if now < self._next_recovery_at:
            return
        self._next_recovery_at = now + STALE_RECOVERY_INTERVAL_SECONDS
        recovered = self.repository.recover_stale_processing_seeds(
            stale_after=timedelta(seconds=self.stale_processing_seconds),
            exclude=frozenset(self.in_flight),
        )
        if recovered:
            self.summary.recovered += len(recovered)
            logger.warning(
                "Nursery: returned %d stale seed(s) to pending: %s",
                len(recovered),
                ", ".join(recovered),
            )

    def _on_grow_done(self, seed_id: str, future: Future[GrowOutcome]) -> None:
        try:
            outcome = future.result()
        except CancelledError:
            logger.warning("Nursery: growth of seed %s was cancelled", seed_id)
            self._release(seed_id)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Nursery: gardener crashed on seed %s", seed_id)
            self._release(seed_id, counter="crashed")
            return

        logger.info("Nursery: seed %s finished as %s", seed_id, outcome.status.value)
        self._release(seed_id, counter="succeeded" if outcome.succeeded else "failed")

    def _release(self, seed_id: str, counter: str | None = None) -> None:
        # count before the seed leaves in-flight so drain() sees final totals
        with self._idle:
            if counter is not None:
                setattr(self.summary, counter, getattr(self.summary, counter) + 1)
            self._in_flight.pop(seed_id, None)
            self._idle.notify_all()

    def _request_stop(self, *, signal_name: str) -> None:
        if self._stop_event.is_set():
            return
        logger.info("Nursery: received %s, finishing in-flight seeds", signal_name)
        self._stop_event.set()

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_event.is_set() and time.monotonic() < deadline:
            self._stop_event.wait(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if threading.current_thread() is not threading.main_thread():
            # Signal handlers can only be installed in the main thread.
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self._request_stop(signal_name=name)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
