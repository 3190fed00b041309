"""
Unit-of-work helper around SQLAlchemy sessions.

The session opened here is the transaction handle. It is passed
explicitly to the unit and from there to every store method that must
take part in the transaction.
"""

import threading
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from .errors import Cancelled

T = TypeVar("T")


def in_transaction(session: Optional[Session]) -> bool:
    """True when `session` is a handle with an open transaction."""
    return session is not None and session.in_transaction()


class Transactor:
    """Runs a unit of work under a single storage transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def within_transaction(
        self,
        unit: Callable[[Session], T],
        cancel: Optional[threading.Event] = None,
    ) -> T:
        """
        Run `unit(session)` and commit, or roll back if it raises.

        Args:
            unit: Callable receiving the transaction handle
            cancel: Optional stop signal checked before begin and before commit

        Returns:
            Whatever `unit` returns

        Raises:
            Cancelled: If the stop signal is set (nothing is committed)
            Exception: The unit's own exception, or the commit failure
        """
        if cancel is not None and cancel.is_set():
            raise Cancelled("cancelled before transaction start")

        session = self.session_factory()
        try:
            with session.begin():
                result = unit(session)
                if cancel is not None and cancel.is_set():
                    raise Cancelled("cancelled before commit")
            return result
        finally:
            session.close()
