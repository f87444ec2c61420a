import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.db.base import Base

MIGRATION_PATH = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "0001_initial.py"


def _load_initial_migration():
    spec = importlib.util.spec_from_file_location("initial_migration", MIGRATION_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_initial_migration_indexes_match_models():
    migration = _load_initial_migration()
    engine = create_engine("sqlite://", poolclass=StaticPool)
    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            migration.upgrade()

    inspector = inspect(engine)
    migrated: dict[str, dict[str, bool]] = {}
    for table in Base.metadata.sorted_tables:
        migrated[table.name] = {index["name"]: bool(index["unique"]) for index in inspector.get_indexes(table.name)}
        declared = {index.name: bool(index.unique) for index in table.indexes}
        assert migrated[table.name] == declared, table.name

    assert migrated["subscriptions"]["ix_subscriptions_shop"] is True
    assert migrated["shops"]["ix_shops_domain"] is True
