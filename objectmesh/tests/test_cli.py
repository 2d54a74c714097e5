"""
Unit Tests: CLI

Only commands that need no network are exercised; the transport client is
built lazily and never contacted here.
"""

import logging

import pytest

from objectmesh import __version__
from objectmesh.__main__ import EXIT_CONFIG, EXIT_ERROR, EXIT_OK, main
from objectmesh.tests.test_config import ENV_VARS


@pytest.fixture
def env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OBJECTMESH_BUCKET", "shrine-test")
    monkeypatch.setenv("OBJECTMESH_LOG_JSON", "false")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield monkeypatch
    root.handlers[:] = handlers
    root.setLevel(level)


class TestCLI:
    """Tests for python -m objectmesh."""

    def test_version(self, capsys):
        assert main(["version"]) == EXIT_OK
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_OK
        assert "usage" in capsys.readouterr().out

    def test_plain_url(self, env, capsys):
        assert main(["url", "a.txt"]) == EXIT_OK
        assert capsys.readouterr().out.strip() == "https://storage.googleapis.com/shrine-test/a.txt"

    def test_prefix_and_host(self, env, capsys):
        env.setenv("OBJECTMESH_PREFIX", "pre")
        env.setenv("OBJECTMESH_HOST", "cdn.example.com")
        assert main(["url", "a.txt"]) == EXIT_OK
        assert capsys.readouterr().out.strip() == "https://cdn.example.com/pre/a.txt"

    def test_missing_bucket(self, env, capsys):
        env.delenv("OBJECTMESH_BUCKET")
        assert main(["exists", "a.txt"]) == EXIT_CONFIG
        assert "bucket is required" in capsys.readouterr().err

    def test_bad_log_level(self, env, capsys):
        env.setenv("OBJECTMESH_LOG_LEVEL", "chatty")
        assert main(["url", "a.txt"]) == EXIT_CONFIG

    def test_clear_requires_confirmation(self, env, capsys):
        assert main(["clear"]) == EXIT_ERROR
        assert "--yes" in capsys.readouterr().err

    def test_bad_header(self, env, capsys):
        assert main(["presign", "a.txt", "--header", "novalue"]) == EXIT_CONFIG
