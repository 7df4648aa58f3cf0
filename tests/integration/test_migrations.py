import sqlite3

from alembic import command
from alembic.config import Config

from src.shared.config import get_settings


def test_migrations_create_settings_schema(tmp_path, monkeypatch):
    db_file = tmp_path / "settings.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_file}")
    get_settings.cache_clear()
    try:
        cfg = Config()
        cfg.set_main_option("script_location", "db/migrations")
        command.upgrade(cfg, "head")
    finally:
        get_settings.cache_clear()

    with sqlite3.connect(db_file) as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        indexes = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
    assert {"settings_aggregates", "settings_history", "alembic_version"} <= tables
    assert "uq_settings_live_tenant_module" in indexes
