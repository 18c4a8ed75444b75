"""
Tests for the initial alembic migration.

Runs upgrade/downgrade against a throwaway SQLite database and checks the
schema matches the ORM models.
"""

import importlib.util
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from footy.database.db import Base

MIGRATION_PATH = Path(__file__).resolve().parent.parent / "alembic" / "versions" / "001_initial_schema.py"


def _load_migration():
    spec = importlib.util.spec_from_file_location("migration_001", MIGRATION_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def connection():
    engine = sa.create_engine("sqlite://")
    with engine.connect() as conn:
        yield conn
    engine.dispose()


def _run(connection, step):
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        step()


def test_upgrade_creates_every_model_table(connection):
    migration = _load_migration()

    _run(connection, migration.upgrade)

    tables = set(sa.inspect(connection).get_table_names())
    assert set(Base.metadata.tables) <= tables


def test_upgrade_matches_model_columns(connection):
    migration = _load_migration()
    _run(connection, migration.upgrade)
    inspector = sa.inspect(connection)

    for name, table in Base.metadata.tables.items():
        migrated = {c["name"] for c in inspector.get_columns(name)}
        assert migrated == set(table.columns.keys()), name


def test_rating_uniqueness_enforced(connection):
    migration = _load_migration()
    _run(connection, migration.upgrade)

    constraints = sa.inspect(connection).get_unique_constraints("ratings")
    assert {"rated_player_id", "rated_by_id", "match_id"} in [set(c["column_names"]) for c in constraints]


def test_upgrade_is_rerunnable_and_downgrade_drops_everything(connection):
    migration = _load_migration()

    _run(connection, migration.upgrade)
    _run(connection, migration.upgrade)
    _run(connection, migration.downgrade)

    assert sa.inspect(connection).get_table_names() == []
