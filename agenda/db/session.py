from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from agenda.core.config import settings


def _engine_options(database_url: str) -> dict:
    backend = make_url(database_url).get_backend_name()
    if backend.startswith("postgresql"):
        # Row timestamps default to UTC; appointment times are stored without offset.
        return {"pool_pre_ping": True, "connect_args": {"options": "-c timezone=utc"}}
    if backend == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
