# pscore/services/storage.py
import json
import logging
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from pscore.database import SessionLocal
from pscore.models.database_models import DBStoredValue
from pscore.services.exceptions import PersistenceCorrupt

logger = logging.getLogger("pscore.storage")

UTC = ZoneInfo("UTC")

# Keys written by the session controller
HAS_POSTED = "hasPosted"
USERNAME = "username"
SCORE_HISTORY = "scoreHistory"
USER_ENTRY = "userEntry"

class KeyValueStore:
    """Durable string key-value storage scoped to one profile.

    Reads return None for a missing key. Writes are fire-and-forget:
    database errors are logged and swallowed so a failing store never breaks
    the session that uses it.
    """

    def __init__(self, profile_id: str, session_factory: sessionmaker = SessionLocal):
        self.profile_id = profile_id
        self._session_factory = session_factory

    def get_item(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            row = db.query(DBStoredValue).filter(
                DBStoredValue.profile_id == self.profile_id,
                DBStoredValue.key == key
            ).first()
            return row.value if row else None

    def set_item(self, key: str, value: str) -> None:
        db = self._session_factory()
        try:
            row = db.query(DBStoredValue).filter(
                DBStoredValue.profile_id == self.profile_id,
                DBStoredValue.key == key
            ).first()
            if row:
                row.value = value
                row.updated_at = datetime.now(UTC)
            else:
                db.add(DBStoredValue(profile_id=self.profile_id, key=key, value=value))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist {key} for profile {self.profile_id}: {e}")
        finally:
            db.close()

    def get_json(self, key: str) -> Any:
        """Decode a JSON value. Raises PersistenceCorrupt when it does not parse."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceCorrupt(key, str(e)) from e

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))
