"""
Shared fixtures for the GST reverse-charge suite.

The database is created once per run. Each test gets a ``session`` bound
to an outer transaction that is rolled back at teardown, so services can
``commit()`` freely (commits land in a savepoint) without leaking rows
into the next test.

Set ``GST_TEST_DATABASE_URL`` to run the module tests against PostgreSQL;
the default is in-memory SQLite.
"""

import json
import logging
import os
from collections.abc import Iterator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from gst_config import load_default_config, load_default_registry
from gst_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from gst_kernel.domain.clock import DeterministicClock
from gst_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

TEST_ACTOR_ID = uuid4()


# -- logging -----------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


class _JSONCollector(logging.Handler):
    """Keeps every record as the dict the production formatter would emit."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.records: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(json.loads(self.format(record)))


@pytest.fixture
def captured_logs():
    """
    Returns a callable yielding the ``gst_kernel`` log records seen so far::

        events = [r["message"] for r in captured_logs()]
        assert "ledger_entry_posted" in events
    """
    collector = _JSONCollector()
    root = logging.getLogger("gst_kernel")
    root.addHandler(collector)
    yield lambda: list(collector.records)
    root.removeHandler(collector)


# -- database ----------------------------------------------------------------


@pytest.fixture(scope="session")
def db_engine():
    engine = init_engine_from_url(os.environ.get("GST_TEST_DATABASE_URL", "sqlite://"))
    yield engine
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    create_tables()
    yield
    drop_tables()


@pytest.fixture
def session(db_tables, db_engine) -> Iterator[Session]:
    connection = db_engine.connect()
    outer = connection.begin()
    db_session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield db_session
    finally:
        db_session.close()
        outer.rollback()
        connection.close()


# -- domain ------------------------------------------------------------------


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture(scope="session")
def registry():
    """Notified-rule registry built from the packaged YAML."""
    return load_default_registry()


@pytest.fixture
def config():
    return load_default_config()
