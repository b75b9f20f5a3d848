"""Database session management."""

import os

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courier_api.settings import get_settings

settings = get_settings()

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), "..", "..", "alembic.ini")


def _engine_options(url: str) -> dict:
    """Pool options per backend (SQLite is used for local dev and tests)."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_engine(
    settings.database_url_computed,
    **_engine_options(settings.database_url_computed),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def alembic_config() -> Config:
    """Alembic config for the migrations shipped next to the API package."""
    return Config(ALEMBIC_INI)


def init_db(bind=None):
    """Upgrade the schema to the latest migration."""
    cfg = alembic_config()
    with (bind or engine).begin() as connection:
        cfg.attributes["connection"] = connection
        command.upgrade(cfg, "head")
