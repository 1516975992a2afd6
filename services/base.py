"""
Store Base
Session handling shared by the persistence services
"""

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from exceptions import SchedulingError, StorageError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseStore:
    """
    Runs a unit of work either inside the caller's session (so several
    stores can share one transaction) or inside a fresh committed one.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def transaction(self):
        """Open a transactional session scope"""
        return session_scope(self.session_factory)

    def _run(self, fn: Callable[[Session], T], db: Optional[Session] = None) -> T:
        try:
            if db is not None:
                return fn(db)
            with session_scope(self.session_factory) as session:
                return fn(session)
        except SchedulingError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"{type(self).__name__} storage failure: {e}")
            raise StorageError(f"Storage operation failed: {e.__class__.__name__}") from e
