import time

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .models import Base

logger = structlog.get_logger(__name__)


def make_engine(database_url: str, **kwargs) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def wait_for_db(engine: Engine, max_attempts: int = 30, sleep_s: float = 1.0) -> None:
    last_exc = None
    for attempt in range(max_attempts):
        try:
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return
        except Exception as exc:
            last_exc = exc
            logger.warning("database_not_ready", attempt=attempt + 1, error=str(exc))
            time.sleep(sleep_s)
    raise RuntimeError(f"Database not ready after {max_attempts} attempts: {last_exc}")
