"""
Batch refresh pipeline.

On every tick the updater drains all stale videos page by page. Each
page fans out to a bounded thread pool: fetch fresh stats, skip videos
whose views did not grow, and write the history point plus the new
aggregates in one transaction. A failure for one video never touches
the others; only the stop event ends a run early.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .config import UpdaterConfig
from .earnings import EarningsPolicy
from .errors import Cancelled
from .logger import StructuredLogger, get_logger
from .models import TrackedEntity
from .storage import Cursor, VideoStore
from .transaction import Transactor


class PipelineState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    STOPPED = "stopped"


class UpdateOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"
    FETCH_FAILED = "fetch_failed"
    WRITE_FAILED = "write_failed"
    CANCELLED = "cancelled"


@dataclass
class DrainReport:
    """Counters for one drain of the stale queue."""

    page_requests: int = 0
    pages: int = 0
    seen: int = 0
    outcomes: dict = field(default_factory=lambda: {o: 0 for o in UpdateOutcome})
    busy: bool = False  # refused because another drain was running
    interrupted: bool = False  # stop event observed between pages
    error: Optional[str] = None  # page request failed

    def record(self, outcome: UpdateOutcome) -> None:
        self.seen += 1
        self.outcomes[outcome] += 1

    @property
    def updated(self) -> int:
        return self.outcomes[UpdateOutcome.UPDATED]

    @property
    def skipped(self) -> int:
        return self.outcomes[UpdateOutcome.SKIPPED]

    @property
    def fetch_failed(self) -> int:
        return self.outcomes[UpdateOutcome.FETCH_FAILED]

    @property
    def write_failed(self) -> int:
        return self.outcomes[UpdateOutcome.WRITE_FAILED]

    @property
    def cancelled(self) -> int:
        return self.outcomes[UpdateOutcome.CANCELLED]

    @property
    def completed(self) -> bool:
        return not (self.busy or self.interrupted or self.error)

    def summary(self) -> dict:
        return {
            "page_requests": self.page_requests,
            "pages": self.pages,
            "seen": self.seen,
            **{o.value: n for o, n in self.outcomes.items()},
            "interrupted": self.interrupted,
            "error": self.error,
        }


class UpdaterService:
    def __init__(
        self,
        store: VideoStore,
        provider,
        transactor: Transactor,
        config: UpdaterConfig,
        policy: EarningsPolicy,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.provider = provider
        self.transactor = transactor
        self.config = config
        self.policy = policy
        self.logger = logger or get_logger()
        self.clock = clock

        self._state_lock = threading.Lock()
        self._state = PipelineState.IDLE
        self._ready = False
        self._drain_lock = threading.Lock()

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        """True once a drain has completed without error or interruption."""
        with self._state_lock:
            return self._ready

    def _set_state(self, state: PipelineState) -> None:
        with self._state_lock:
            self._state = state

    def run(self, stop: threading.Event) -> None:
        """
        Drain now and then once per interval until `stop` is set.

        Ticks that fall while a drain is still running are skipped, not
        queued, so runs never overlap.
        """
        interval = self.config.interval
        self.logger.info(
            "updater: started",
            interval=interval,
            batch_size=self.config.batch_size,
            min_update_age=self.config.min_update_age,
            max_concurrency=self.config.max_concurrency,
        )
        next_tick = time.monotonic()
        try:
            while not stop.is_set():
                self.drain(stop)
                if stop.is_set():
                    break

                next_tick += interval
                now = time.monotonic()
                missed = 0
                while next_tick <= now:
                    next_tick += interval
                    missed += 1
                if missed:
                    self.logger.warning("updater: drain overran the interval, skipping ticks", skipped=missed)

                if stop.wait(next_tick - now):
                    break
        finally:
            self._set_state(PipelineState.STOPPED)
            self.logger.info("updater: stopped")

    def drain(self, stop: Optional[threading.Event] = None) -> DrainReport:
        """
        Process stale pages until one comes back empty.

        Returns:
            DrainReport; `busy` is set if another drain was already running
        """
        stop = stop or threading.Event()
        if not self._drain_lock.acquire(blocking=False):
            self.logger.warning("updater: previous drain still running, skipping")
            return DrainReport(busy=True)

        report = DrainReport()
        try:
            self._set_state(PipelineState.DRAINING)
            started = self.clock()
            cursor: Optional[Cursor] = None

            while True:
                if stop.is_set():
                    report.interrupted = True
                    break
                try:
                    page = self.store.list_stale(
                        self.config.min_update_age,
                        self.config.batch_size,
                        after=cursor,
                        now=started,
                    )
                except Exception as e:
                    report.error = str(e)
                    self.logger.error("updater: page request failed", error=str(e), pages=report.pages)
                    break
                report.page_requests += 1
                if not page:
                    break

                report.pages += 1
                last = page[-1]
                cursor = (last.updated_at, last.id)
                self.logger.debug("updater: processing page", page=report.pages, size=len(page))
                for outcome in self.process_page(page, stop):
                    report.record(outcome)

            if report.completed:
                with self._state_lock:
                    self._ready = True
            if report.seen == 0 and report.completed:
                self.logger.info("updater: no videos to update")
            else:
                self.logger.info("updater: drain finished", **report.summary())
            return report
        finally:
            with self._state_lock:
                if self._state is PipelineState.DRAINING:
                    self._state = PipelineState.IDLE
            self._drain_lock.release()

    def process_page(
        self,
        entities: Sequence[TrackedEntity],
        stop: Optional[threading.Event] = None,
    ) -> List[UpdateOutcome]:
        """Update every video of one page, at most max_concurrency at a time.

        Returns once all per-video tasks have finished.
        """
        stop = stop or threading.Event()
        if not entities:
            return []

        workers = min(self.config.max_concurrency, len(entities))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="updater") as executor:
            futures = [executor.submit(self.update_entity, entity, stop) for entity in entities]
        return [future.result() for future in futures]

    def update_entity(self, entity: TrackedEntity, stop: threading.Event) -> UpdateOutcome:
        outcome = self._update_entity(entity, stop)
        self.logger.record_update_outcome(outcome.value)
        return outcome

    def _update_entity(self, entity: TrackedEntity, stop: threading.Event) -> UpdateOutcome:
        if stop.is_set():
            return UpdateOutcome.CANCELLED

        try:
            stats = self.provider.fetch(entity.url, cancel=stop)
        except Cancelled:
            return UpdateOutcome.CANCELLED
        except Exception as e:
            self.logger.error(
                "updater: fetch failed",
                video_id=entity.id,
                url=entity.url,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._mark_error(entity, e)
            return UpdateOutcome.FETCH_FAILED

        views_delta = stats.views - entity.current_views
        if views_delta <= 0:
            self.logger.debug(
                "updater: views did not grow, skipping",
                video_id=entity.id,
                stored=entity.current_views,
                fetched=stats.views,
            )
            return UpdateOutcome.SKIPPED

        new_earnings = entity.current_earnings + self.policy.delta(views_delta)

        def unit(session):
            self.store.append_history(entity.id, stats.views, new_earnings, session=session)
            self.store.update_aggregate(entity.id, stats.views, new_earnings, session=session)

        try:
            self.transactor.within_transaction(unit, cancel=stop)
        except Cancelled:
            return UpdateOutcome.CANCELLED
        except Exception as e:
            self.logger.error(
                "updater: write failed, rolled back",
                video_id=entity.id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return UpdateOutcome.WRITE_FAILED

        self.logger.debug(
            "updater: video updated",
            video_id=entity.id,
            views=stats.views,
            earnings=new_earnings,
        )
        return UpdateOutcome.UPDATED

    def _mark_error(self, entity: TrackedEntity, error: Exception) -> None:
        try:
            self.store.mark_error(entity.id, f"{type(error).__name__}: {error}")
        except Exception as e:
            self.logger.error("updater: could not record fetch error", video_id=entity.id, error=str(e))
