"""
Pytest configuration and shared fixtures.
"""

import threading
import time
from datetime import datetime, timedelta
from typing import Dict, List, Union

import pytest

from viewtracker.config import UpdaterConfig
from viewtracker.database import Video, VideoStat, get_session_factory, init_database
from viewtracker.earnings import EarningsPolicy
from viewtracker.logger import StructuredLogger, reset_logger
from viewtracker.models import FetchResult
from viewtracker.storage import VideoStore
from viewtracker.transaction import Transactor
from viewtracker.updater import UpdaterService


class FakeProvider:
    """Provider double returning canned results per URL.

    A canned value may be a FetchResult, an int (views), an exception
    instance to raise, or a callable(url) returning any of those.
    Tracks how many fetches are in flight at once.
    """

    def __init__(self, results: Dict[str, object] = None, default: Union[int, FetchResult, None] = None, delay: float = 0.0):
        self.results = dict(results or {})
        self.default = default
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch(self, url, cancel=None):
        with self._lock:
            self.calls.append(url)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            value = self.results.get(url, self.default)
            if callable(value) and not isinstance(value, FetchResult):
                value = value(url)
            if isinstance(value, BaseException):
                raise value
            if isinstance(value, int):
                return FetchResult(views=value)
            if value is None:
                raise AssertionError(f"unexpected fetch for {url}")
            return value
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture(autouse=True)
def _fresh_global_logger():
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def quiet_logger(tmp_path) -> StructuredLogger:
    return StructuredLogger(
        name="viewtracker-test",
        level="DEBUG",
        log_dir=tmp_path / "logs",
        enable_file=False,
        enable_console=False,
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "viewtracker.db"


@pytest.fixture
def session_factory(db_path):
    engine = init_database(db_path)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> VideoStore:
    return VideoStore(session_factory)


@pytest.fixture
def transactor(session_factory) -> Transactor:
    return Transactor(session_factory)


@pytest.fixture
def policy() -> EarningsPolicy:
    return EarningsPolicy(rate=0.10, per=1000)


@pytest.fixture
def add_video(session_factory):
    """Insert a video row directly; returns its id."""
    counter = [0]

    def _add(
        views: int = 0,
        earnings: float = 0.0,
        status: str = "active",
        age: timedelta = timedelta(hours=2),
        url: str = None,
        updated_at: datetime = None,
    ) -> int:
        counter[0] += 1
        n = counter[0]
        stamp = updated_at or (datetime.now() - age)
        session = session_factory()
        try:
            row = Video(
                external_id=f"7{n:018d}",
                url=url or f"https://www.tiktok.com/@creator/video/{n}",
                current_views=views,
                current_earnings=earnings,
                status=status,
                created_at=stamp,
                updated_at=stamp,
            )
            session.add(row)
            session.commit()
            return row.id
        finally:
            session.close()

    return _add


@pytest.fixture
def history_rows(session_factory):
    """Return all stats rows for a video, oldest first."""

    def _rows(video_id: int):
        session = session_factory()
        try:
            return (
                session.query(VideoStat)
                .filter_by(video_id=video_id)
                .order_by(VideoStat.id)
                .all()
            )
        finally:
            session.close()

    return _rows


@pytest.fixture
def make_updater(store, transactor, policy, quiet_logger):
    def _make(provider, **config_overrides) -> UpdaterService:
        config = UpdaterConfig(
            interval=config_overrides.pop("interval", 3600.0),
            batch_size=config_overrides.pop("batch_size", 10),
            min_update_age=config_overrides.pop("min_update_age", 3600.0),
            max_concurrency=config_overrides.pop("max_concurrency", 2),
        )
        return UpdaterService(
            config_overrides.pop("store", store),
            provider,
            config_overrides.pop("transactor", transactor),
            config,
            policy,
            logger=quiet_logger,
        )

    return _make
