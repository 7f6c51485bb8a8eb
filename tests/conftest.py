"""Shared fixtures for all tests."""

import pytest

from app.core.config import settings
from app.main import app


@pytest.fixture
def clean_overrides():
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def logs_secret(monkeypatch):
    monkeypatch.setattr(settings, "LOGS_SECRET", "s3cret")
    return "s3cret"
