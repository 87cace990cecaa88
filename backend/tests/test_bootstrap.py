import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from smartschedule.db import bootstrap


def _memory_engine():
    return create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


def test_ensure_schema_creates_every_required_table():
    engine = _memory_engine()

    bootstrap.ensure_schema(engine)

    assert bootstrap.find_schema_gaps(engine) == ([], {})


def test_schema_gaps_report_missing_columns():
    engine = _memory_engine()
    bootstrap.ensure_schema(engine)
    with engine.begin() as connection:
        connection.execute(text("DROP TABLE rule_sets"))
        connection.execute(text("CREATE TABLE rule_sets (id VARCHAR(36) PRIMARY KEY)"))

    missing_tables, missing_columns = bootstrap.find_schema_gaps(engine)

    assert missing_tables == []
    assert missing_columns == {"rule_sets": ["version"]}


def test_ensure_schema_raises_on_validation_failure(monkeypatch):
    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", lambda bind: None)

    with pytest.raises(RuntimeError, match="Schema bootstrap failed"):
        bootstrap.ensure_schema(_memory_engine())
