"""Shared fixtures for the promptcascade test suite."""

import pytest

from promptcascade.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and trace storage inside tmp_path, never ~/.promptcascade."""
    home = tmp_path / "home"
    monkeypatch.setenv("PROMPTCASCADE_HOME", str(home))
    yield home
    clear_trace_context()
