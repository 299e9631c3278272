import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from orchestrator.config.settings import Settings
from orchestrator.database.connection import close_pool, get_connection, init_pool
from orchestrator.database.schema import apply_schema


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "bioreport_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            apply_schema(conn)
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def owner_id(integration_pool: None) -> Generator[str, None, None]:
    """A unique owner whose submissions are deleted after the test."""
    owner = f"it-{uuid.uuid4()}"
    yield owner
    with get_connection() as conn:
        conn.execute(
            "DELETE FROM stage_requests WHERE submission_id IN "
            "(SELECT id FROM submissions WHERE owner_id = %s)",
            (owner,),
        )
        conn.execute("DELETE FROM submissions WHERE owner_id = %s", (owner,))
        conn.commit()


@pytest.fixture
def channel(integration_pool: None) -> Generator[str, None, None]:
    """A unique transport channel whose events are deleted after the test."""
    name = f"it-{uuid.uuid4()}"
    yield name
    with get_connection() as conn:
        conn.execute("DELETE FROM stage_events WHERE channel = %s", (name,))
        conn.commit()
