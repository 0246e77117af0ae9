"""
Integration Test Layer Configuration

Structure:
    tests/integration/
    └── promotion/   Repository and ledger engine against PostgreSQL

Usage:
    POSTGRES_HOST=localhost POSTGRES_PORT=5432 pytest tests/integration -v
    SKIP_DB_TESTS=1 pytest tests/integration      # skip everything here
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

# Integration runs never publish to a real NATS
os.environ.setdefault("NATS_ENABLED", "false")


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (need PostgreSQL)"
    )
