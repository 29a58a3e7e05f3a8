"""
Pytest configuration and fixtures for dataset-prep-pipeline tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from typing import Generator

import pytest

from dataprep.core.models import DataSource, SourceRecord
from dataprep.storage.memory import InMemoryPipelineStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with initialized schema
    """
    testcontainers_postgres = pytest.importorskip("testcontainers.postgres")
    import psycopg

    try:
        container = testcontainers_postgres.PostgresContainer(
            image="postgres:16.2-alpine",
            username="test_pipeline",
            password="test_password",
            dbname="test_dataprep",
        )
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )
        with open(init_sql_path, 'r') as f:
            init_sql = f.read()

        with psycopg.connect(_conninfo(container)) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


def _conninfo(container) -> str:
    # testcontainers reports a SQLAlchemy-style URL; psycopg wants plain postgresql://
    return container.get_connection_url().replace("postgresql+psycopg2://", "postgresql://")


@pytest.fixture(scope="function")
def db_pool(postgres_container):
    """
    Open a DatabaseConnectionPool against the test container

    Yields:
        Open DatabaseConnectionPool
    """
    from dataprep.storage.connection import DatabaseConnectionPool

    pool = DatabaseConnectionPool(conninfo=_conninfo(postgres_container), max_size=4, timeout=10.0)
    pool.open()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool):
    """
    Provide a clean database by truncating all tables before each test

    Yields:
        Open DatabaseConnectionPool over empty tables
    """
    with db_pool.get_connection() as conn:
        with conn.cursor() as cur:
            # Order matters due to foreign keys
            cur.execute("TRUNCATE TABLE audit_event")
            cur.execute("TRUNCATE TABLE output_artifact CASCADE")
            cur.execute("TRUNCATE TABLE processing_run CASCADE")
            cur.execute("TRUNCATE TABLE pipeline_config CASCADE")
            cur.execute("TRUNCATE TABLE source_record CASCADE")
            cur.execute("TRUNCATE TABLE data_source CASCADE")
        conn.commit()

    yield db_pool


# =======================
# STORE FIXTURES
# =======================

@pytest.fixture
def memory_store() -> Generator[InMemoryPipelineStore, None, None]:
    store = InMemoryPipelineStore()
    yield store
    store.close()


@pytest.fixture
def support_rows() -> list[dict]:
    """A small support export: two conversations and one standalone ticket."""
    return [
        {"ticket_id": "7", "author": "customer", "body": "Hi, my name is Alice Smith. Email alice@example.com", "status": "solved", "created_at": "2024-03-01T10:00:00Z"},
        {"ticket_id": "7", "author": "agent", "body": "Thanks Alice, we will call 555-123-4567 shortly.", "status": "solved", "created_at": "2024-03-01T10:05:00Z"},
        {"ticket_id": "8", "author": "customer", "body": "My invoice is wrong again", "status": "open", "created_at": "2024-03-02T09:00:00Z"},
        {"ticket_id": "8", "author": "agent", "body": "Sorry about that, fixed now.", "status": "open", "created_at": "2024-03-02T09:30:00Z"},
        {"ticket_id": "9", "author": "customer", "body": "ok", "status": "solved", "created_at": "2024-03-03T08:00:00Z"},
    ]


@pytest.fixture
def support_records(support_rows) -> list[SourceRecord]:
    return [SourceRecord(row_index=i, data=row) for i, row in enumerate(support_rows)]


@pytest.fixture
def support_source(memory_store, support_records) -> DataSource:
    """The support export registered in the in-memory store."""
    return memory_store.add_source(
        DataSource(source_id="zendesk", name="zendesk.csv", columns=["ticket_id", "author", "body", "status", "created_at"]),
        support_records,
    )


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_data_dir() -> str:
    """
    Get path to test data fixtures directory

    Returns:
        Path to tests/fixtures directory
    """
    return os.path.join(os.path.dirname(__file__), "fixtures")


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session", autouse=True)
def test_env_vars():
    """
    Set test environment variables

    This fixture loads config/test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
