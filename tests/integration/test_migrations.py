import sqlite3

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator


@pytest.fixture
def temp_db_path(tmp_path):
    return str(tmp_path / "test_db.sqlite")


def _tables(db_path):
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        return {r[0] for r in rows}
    finally:
        conn.close()


def test_migrator_creates_schema(temp_db_path, migrations_dir):
    applied = SQLiteMigrator(temp_db_path, migrations_dir).run_migrations()

    assert applied == ["001_newsletter_core.sql"]
    assert {"_migrations", "editors", "newsletters", "posts", "subscribers"} <= _tables(
        temp_db_path
    )


def test_migrator_is_idempotent(temp_db_path, migrations_dir):
    migrator = SQLiteMigrator(temp_db_path, migrations_dir)

    migrator.run_migrations()
    assert migrator.run_migrations() == []
    assert migrator.pending_migrations() == []

    conn = sqlite3.connect(temp_db_path)
    count = conn.execute(
        "SELECT count(*) FROM _migrations WHERE filename='001_newsletter_core.sql'"
    ).fetchone()[0]
    conn.close()
    assert count == 1


def test_down_section_not_applied(tmp_path, temp_db_path):
    mig_dir = tmp_path / "migs"
    mig_dir.mkdir()
    (mig_dir / "001_t.sql").write_text(
        "-- Up\nCREATE TABLE t (id INTEGER);\n-- Down\nDROP TABLE t;\n"
    )

    SQLiteMigrator(temp_db_path, str(mig_dir)).run_migrations()

    assert "t" in _tables(temp_db_path)


def test_failed_migration_raises(tmp_path, temp_db_path):
    mig_dir = tmp_path / "migs"
    mig_dir.mkdir()
    (mig_dir / "001_bad.sql").write_text("CREATE TABLE (;")

    migrator = SQLiteMigrator(temp_db_path, str(mig_dir))
    with pytest.raises(RuntimeError, match="001_bad.sql"):
        migrator.run_migrations()
    assert migrator.pending_migrations() == ["001_bad.sql"]
