"""
SQLAlchemy-backed store for tracked videos and their stats history.

Write methods take an optional `session`. When given, the write joins
that transaction and nothing is committed here; when omitted, the store
opens its own session and commits before returning.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional, Tuple

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .database import Video, VideoStat
from .errors import NotFoundError, StaleWriteError
from .models import EntityStatus, HistoryPoint, TrackedEntity

Cursor = Tuple[datetime, int]

REFRESHABLE_STATUSES = (EntityStatus.ACTIVE.value, EntityStatus.ERROR.value)


def _to_entity(row: Video) -> TrackedEntity:
    return TrackedEntity(
        id=row.id,
        external_id=row.external_id,
        url=row.url,
        current_views=row.current_views,
        current_earnings=row.current_earnings,
        status=EntityStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_error=row.last_error,
        last_error_at=row.last_error_at,
    )


class VideoStore:
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = datetime.now):
        self.session_factory = session_factory
        self.clock = clock

    @contextmanager
    def _session_scope(self, session: Optional[Session] = None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        own = self.session_factory()
        try:
            with own.begin():
                yield own
        finally:
            own.close()

    # Refresh pipeline operations

    def list_stale(
        self,
        min_update_age: float,
        limit: int,
        after: Optional[Cursor] = None,
        now: Optional[datetime] = None,
    ) -> List[TrackedEntity]:
        """
        Select one page of videos due for a refresh.

        Args:
            min_update_age: Seconds since the last update before a video is stale
            limit: Page size
            after: Keyset cursor (updated_at, id) of the last row already seen
            now: Reference time (default: store clock)

        Returns:
            Videos ordered oldest-updated first, ties broken by id
        """
        cutoff = (now or self.clock()) - timedelta(seconds=min_update_age)
        stmt = (
            select(Video)
            .where(Video.status.in_(REFRESHABLE_STATUSES))
            .where(Video.updated_at < cutoff)
            .order_by(Video.updated_at, Video.id)
            .limit(limit)
        )
        if after is not None:
            after_updated_at, after_id = after
            stmt = stmt.where(
                or_(
                    Video.updated_at > after_updated_at,
                    and_(Video.updated_at == after_updated_at, Video.id > after_id),
                )
            )
        with self._session_scope() as session:
            return [_to_entity(row) for row in session.scalars(stmt)]

    def append_history(
        self,
        video_id: int,
        views: int,
        earnings: float,
        session: Optional[Session] = None,
    ) -> None:
        with self._session_scope(session) as s:
            s.add(VideoStat(video_id=video_id, captured_at=self.clock(), views=views, earnings=earnings))
            s.flush()

    def update_aggregate(
        self,
        video_id: int,
        views: int,
        earnings: float,
        session: Optional[Session] = None,
    ) -> None:
        """
        Move a video's aggregates forward.

        The update only applies when the stored view count is strictly
        lower than `views`. A successful refresh also clears a previous
        error state; a stopped video keeps its status.

        Raises:
            NotFoundError: Unknown video
            StaleWriteError: Stored views already >= `views`
        """
        now = self.clock()
        stmt = (
            update(Video)
            .where(Video.id == video_id, Video.current_views < views)
            .values(
                current_views=views,
                current_earnings=earnings,
                updated_at=now,
                status=case(
                    (Video.status == EntityStatus.STOPPED.value, EntityStatus.STOPPED.value),
                    else_=EntityStatus.ACTIVE.value,
                ),
                last_error=None,
                last_error_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_scope(session) as s:
            result = s.execute(stmt)
            if result.rowcount == 0:
                if s.get(Video, video_id) is None:
                    raise NotFoundError(f"video {video_id} not found")
                raise StaleWriteError(f"video {video_id} already has views >= {views}")

    def mark_error(self, video_id: int, error_text: str) -> bool:
        """
        Record a refresh failure. Also advances updated_at so the normal
        staleness window throttles the next attempt. Stopped videos are
        left untouched.

        Returns:
            True if a row was updated
        """
        now = self.clock()
        stmt = (
            update(Video)
            .where(Video.id == video_id, Video.status != EntityStatus.STOPPED.value)
            .values(
                status=EntityStatus.ERROR.value,
                last_error=error_text,
                last_error_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_scope() as s:
            return s.execute(stmt).rowcount > 0

    def mark_stopped(self, video_id: int) -> None:
        with self._session_scope() as s:
            row = s.get(Video, video_id)
            if row is None:
                raise NotFoundError(f"video {video_id} not found")
            row.status = EntityStatus.STOPPED.value
            row.updated_at = self.clock()

    # Intake and read operations

    def create(self, external_id: str, url: str, views: int, earnings: float) -> TrackedEntity:
        """Insert a new active video together with its first history point.

        If another writer inserted the same external id first, that row is
        returned instead and nothing is written.
        """
        now = self.clock()
        try:
            with self._session_scope() as s:
                row = Video(
                    external_id=external_id,
                    url=url,
                    current_views=views,
                    current_earnings=earnings,
                    status=EntityStatus.ACTIVE.value,
                    created_at=now,
                    updated_at=now,
                )
                s.add(row)
                s.flush()
                s.add(VideoStat(video_id=row.id, captured_at=now, views=views, earnings=earnings))
                s.flush()
                return _to_entity(row)
        except IntegrityError:
            existing = self.find_by_external_id(external_id)
            if existing is None:
                raise
            return existing

    def get(self, video_id: int) -> TrackedEntity:
        with self._session_scope() as s:
            row = s.get(Video, video_id)
            if row is None:
                raise NotFoundError(f"video {video_id} not found")
            return _to_entity(row)

    def find_by_external_id(self, external_id: str) -> Optional[TrackedEntity]:
        with self._session_scope() as s:
            row = s.scalars(select(Video).where(Video.external_id == external_id)).first()
            return _to_entity(row) if row is not None else None

    def list_all(self, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> Tuple[List[TrackedEntity], int]:
        """Return one page of videos (newest first) and the total count."""
        stmt = select(Video)
        count_stmt = select(func.count()).select_from(Video)
        if status:
            stmt = stmt.where(Video.status == status)
            count_stmt = count_stmt.where(Video.status == status)
        stmt = stmt.order_by(Video.id.desc()).limit(limit).offset(offset)
        with self._session_scope() as s:
            total = s.scalar(count_stmt)
            return [_to_entity(row) for row in s.scalars(stmt)], total

    def history(
        self,
        video_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HistoryPoint]:
        """History points in capture order; `start` inclusive, `end` exclusive."""
        stmt = select(VideoStat).where(VideoStat.video_id == video_id)
        if start is not None:
            stmt = stmt.where(VideoStat.captured_at >= start)
        if end is not None:
            stmt = stmt.where(VideoStat.captured_at < end)
        stmt = stmt.order_by(VideoStat.captured_at, VideoStat.id)
        with self._session_scope() as s:
            return [
                HistoryPoint(video_id=p.video_id, captured_at=p.captured_at, views=p.views, earnings=p.earnings)
                for p in s.scalars(stmt)
            ]
