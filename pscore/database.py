# pscore/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from pscore.config.settings import DATABASE_URL

def build_engine(url: str):
    # Create engine with appropriate settings
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False}
        )
    return create_engine(
        url,
        pool_size=20,
        max_overflow=0
    )

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def init_db(bind=None):
    # Importing the models registers their tables on Base.metadata
    from pscore.models import database_models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)  # This will only create tables that don't exist

def reset_db(bind=None):
    from pscore.models import database_models  # noqa: F401
    Base.metadata.drop_all(bind=bind or engine)
    Base.metadata.create_all(bind=bind or engine)
