from sqlalchemy import text
from sqlalchemy.pool import StaticPool

from app.database import build_engine, log_slow_queries


def test_in_memory_sqlite_shares_one_connection():
    engine = build_engine("sqlite://")

    assert isinstance(engine.pool, StaticPool)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE marker (id INTEGER)"))
    with engine.connect() as conn:
        assert conn.execute(text("SELECT count(*) FROM marker")).scalar() == 0


def test_file_sqlite_uses_default_pool(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'sync.db'}")

    assert not isinstance(engine.pool, StaticPool)


def test_slow_queries_are_reported(caplog):
    engine = build_engine("sqlite://")
    log_slow_queries(engine, threshold=0)

    with caplog.at_level("WARNING", logger="app.database"):
        with engine.connect() as conn:
            conn.execute(text("SELECT 42"))

    assert any("Slow query" in message and "SELECT 42" in message for message in caplog.messages)


def test_fast_queries_are_not_reported(caplog):
    engine = build_engine("sqlite://")
    log_slow_queries(engine, threshold=60)

    with caplog.at_level("WARNING", logger="app.database"):
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    assert not [m for m in caplog.messages if "Slow query" in m]
