"""Tests for the Alembic schema and the readiness migration check."""

from unittest.mock import patch

import pytest
from alembic import command
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from courier_api.db.base import Base
from courier_api.db.session import alembic_config, init_db
from courier_api.main import app
from courier_api.models.tracking import PENDING, TrackedWrite


@pytest.fixture
def bare_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


def current_revision(engine):
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def test_upgrade_reaches_head(bare_engine):
    init_db(bind=bare_engine)

    head = ScriptDirectory.from_config(alembic_config()).get_current_head()
    assert head == "001"
    assert current_revision(bare_engine) == head


def test_migrated_schema_matches_models(bare_engine):
    init_db(bind=bare_engine)

    inspector = inspect(bare_engine)
    columns = {c["name"] for c in inspector.get_columns("tracked_writes")}
    assert columns == set(Base.metadata.tables["tracked_writes"].columns.keys())

    indexes = {ix["name"]: ix for ix in inspector.get_indexes("tracked_writes")}
    assert indexes["ix_tracked_writes_cid"]["unique"]
    assert {"ix_tracked_writes_status", "ix_tracked_writes_created_at"} <= set(indexes)


def test_upgrade_is_repeatable(bare_engine):
    init_db(bind=bare_engine)
    init_db(bind=bare_engine)

    assert current_revision(bare_engine) == "001"


def test_migrated_table_accepts_tracked_writes(bare_engine):
    init_db(bind=bare_engine)
    session = sessionmaker(bind=bare_engine)()
    try:
        session.add(TrackedWrite(
            cid="sha256:" + "ab" * 32,
            thread_id="0x" + "00" * 32,
            message_index=0,
            sender="0x" + "11" * 20,
            object_key="threads/x",
        ))
        session.commit()

        assert session.query(TrackedWrite).one().status == PENDING
    finally:
        session.close()


def test_downgrade_drops_the_table(bare_engine):
    init_db(bind=bare_engine)

    cfg = alembic_config()
    with bare_engine.begin() as connection:
        cfg.attributes["connection"] = connection
        command.downgrade(cfg, "base")

    assert "tracked_writes" not in inspect(bare_engine).get_table_names()


class TestReadiness:
    def ready(self, engine):
        with patch("courier_api.main.SessionLocal", sessionmaker(bind=engine)):
            return TestClient(app).get("/ready")

    def test_ready_when_schema_is_at_head(self, bare_engine):
        init_db(bind=bare_engine)

        response = self.ready(bare_engine)

        assert response.status_code == 200
        assert response.json()["checks"]["migrations"] is True

    def test_not_ready_without_migrations(self, bare_engine):
        response = self.ready(bare_engine)

        assert response.status_code == 503
        checks = response.json()["checks"]
        assert checks["database"] is True
        assert checks["migrations"] is False
