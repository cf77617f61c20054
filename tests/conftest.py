"""Pytest configuration and fixtures."""

import os

import pytest


@pytest.fixture(autouse=True)
def _isolate_perpsim_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's PERPSIM_* settings out of every test."""
    for name in list(os.environ):
        if name.startswith("PERPSIM_"):
            monkeypatch.delenv(name, raising=False)
