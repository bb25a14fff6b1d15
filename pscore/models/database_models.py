# pscore/models/database_models.py
from sqlalchemy import Column, String, Text, DateTime, Index
from sqlalchemy.types import TypeDecorator
from pscore.database import Base
from zoneinfo import ZoneInfo
from datetime import datetime

UTC = ZoneInfo("UTC")

class UTCDateTime(TypeDecorator):
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return value.replace(tzinfo=UTC)
        return value

class DBStoredValue(Base):
    """One durable key of one profile, the server-side stand-in for localStorage."""
    __tablename__ = "stored_values"

    profile_id = Column(String, primary_key=True)
    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False, default=lambda: datetime.now(UTC))

    __table_args__ = (
        Index('idx_stored_values_profile', 'profile_id'),
    )
