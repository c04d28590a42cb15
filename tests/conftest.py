"""Shared fixtures for email retry engine tests."""

import random
from datetime import timedelta

import pytest

from email_retry.config.environment import EnvironmentConfig
from email_retry.domain.models import EmailType, FailureRecord
from email_retry.logging.context import clear_log_context
from email_retry.persistence import close_database, init_database
from email_retry.retry.engine import RetryEngine
from tests.helpers import FIXED_NOW, InMemoryFailureStore


@pytest.fixture(autouse=True)
def clean_log_context():
    """Keep log context fields from leaking between tests."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def make_record():
    """Factory for FailureRecord with sensible defaults.

    Each call gets a distinct created_at so ordering is deterministic.
    """
    counter = {"n": 0}

    def _make(**overrides) -> FailureRecord:
        counter["n"] += 1
        fields = {
            "email_type": EmailType.REMINDER,
            "provider": "sendgrid",
            "recipient": f"user{counter['n']}@example.com",
            "subject": "Check-in required",
            "error_message": "ETIMEDOUT: connection timed out",
            "retry_count": 0,
            "created_at": FIXED_NOW - timedelta(hours=1) + timedelta(minutes=counter["n"]),
        }
        fields.update(overrides)
        return FailureRecord(**fields)

    return _make


@pytest.fixture
def memory_store():
    return InMemoryFailureStore()


@pytest.fixture
def sleep_calls():
    """Records requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def engine(memory_store, sleep_calls):
    """RetryEngine over the in-memory store with no real sleeping and seeded jitter."""
    return RetryEngine(
        store=memory_store,
        sleep=sleep_calls.append,
        clock=lambda: FIXED_NOW,
        rng=random.Random(42),
    )


@pytest.fixture
def database():
    """Fresh in-memory SQLite database for each test."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="mailer@example.com",
        smtp_pass="secret123",
        smtp_sender_name="Keeper Notifications",
    )


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Minimal valid environment for load_config()."""
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_USER", "mailer@example.com")
    monkeypatch.setenv("SMTP_PASS", "secret123")
    for name in ("SMTP_SENDER_NAME", "LOG_LEVEL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
