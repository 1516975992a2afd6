"""
Profile Store
Minimal profile lookups needed by the scheduling engine
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

import models
from services.base import BaseStore


logger = logging.getLogger(__name__)


class ProfileStore(BaseStore):
    """Profiles are managed elsewhere; the engine only creates and resolves them"""

    def create(self, name: str, is_primary: bool = False, db: Optional[Session] = None) -> models.Profile:
        def _create(session: Session) -> models.Profile:
            profile = models.Profile(name=name, is_primary=is_primary)
            session.add(profile)
            session.flush()
            return profile

        return self._run(_create, db)

    def get(self, profile_id: str, db: Optional[Session] = None) -> Optional[models.Profile]:
        def _get(session: Session) -> Optional[models.Profile]:
            return session.query(models.Profile).filter(models.Profile.id == profile_id).first()

        return self._run(_get, db)

    def list_all(self, db: Optional[Session] = None) -> List[models.Profile]:
        def _get(session: Session) -> List[models.Profile]:
            return session.query(models.Profile).order_by(models.Profile.created_at).all()

        return self._run(_get, db)

    def get_primary(self, db: Optional[Session] = None) -> Optional[models.Profile]:
        """The primary profile, falling back to the oldest one"""
        def _get(session: Session) -> Optional[models.Profile]:
            return session.query(models.Profile).order_by(
                models.Profile.is_primary.desc(), models.Profile.created_at.asc()
            ).first()

        return self._run(_get, db)
