"""Tests for the minidav-server command."""

import sys

import pytest
import uvicorn

from minidav.cmd.server import main


def test_main(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    monkeypatch.setattr(sys, "argv", ["minidav-server", "--port", "9000", "--base-uri", "/dav", str(tmp_path)])

    main()

    [(app, kwargs)] = calls
    assert kwargs == {"host": "127.0.0.1", "port": 9000, "log_level": "info"}
    assert app.routes[0].endpoint.base_uri == "/dav/"


def test_main_missing_directory(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(sys, "argv", ["minidav-server", str(tmp_path / "missing")])

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 1
    assert "does not exist" in capsys.readouterr().err
