from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from iptv_engine.core.config import settings


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Engine components are called from HTTP worker threads
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


def init_db(bind) -> None:
    """Create every table registered on Base (new installations)."""
    from iptv_engine.db.base import Base
    Base.metadata.create_all(bind=bind)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
