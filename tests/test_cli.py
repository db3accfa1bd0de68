"""Tests for the command line runner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from psqlkit.cli import coerce_bind, main
from psqlkit.session import Session


@pytest.fixture
def missing_config(tmp_path: Path) -> str:
    return str(tmp_path / "config.toml")


def _factory(connector):
    return lambda config: Session(config, connector=connector)


def test_coerce_bind_handles_null_numbers_and_text() -> None:
    assert coerce_bind("NULL") is None
    assert coerce_bind("42") == 42
    assert coerce_bind("2.5") == 2.5
    assert coerce_bind("alice") == "alice"


def test_main_prints_rows_as_json(connector, missing_config: str, capsys: pytest.CaptureFixture[str]) -> None:
    connector.queue(("id", "email"), [(1, "a@x.io")])

    code = main(
        ["--config", missing_config, "SELECT id, email FROM accounts WHERE email = ?", "a@x.io"],
        session_factory=_factory(connector),
    )

    assert code == 0
    assert json.loads(capsys.readouterr().out) == [{"id": 1, "email": "a@x.io"}]
    assert connector.statements() == ["SELECT id, email FROM accounts WHERE email = 'a@x.io'"]
    assert connector.handles["default"].closed
    assert connector.shutdown_called


def test_main_honours_mode(connector, missing_config: str, capsys: pytest.CaptureFixture[str]) -> None:
    connector.queue(("count",), [(3,)])

    code = main(
        ["--config", missing_config, "--mode", "fetch_one", "SELECT count(*) FROM accounts"],
        session_factory=_factory(connector),
    )

    assert code == 0
    assert json.loads(capsys.readouterr().out) == 3


def test_main_reports_errors(connector, missing_config: str, capsys: pytest.CaptureFixture[str]) -> None:
    connector.fail("relation \"missing\" does not exist")

    code = main(["--config", missing_config, "SELECT * FROM missing"], session_factory=_factory(connector))

    captured = capsys.readouterr()
    assert code == 1
    assert captured.out == ""
    assert captured.err.startswith("error: ")
    assert "missing" in captured.err


def test_main_rejects_unknown_server(connector, missing_config: str, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(
        ["--config", missing_config, "--server", "nowhere", "SELECT 1"],
        session_factory=_factory(connector),
    )

    assert code == 1
    assert "'nowhere' not found" in capsys.readouterr().err
    assert connector.opened == []


def test_main_prints_query_log(connector, missing_config: str, capsys: pytest.CaptureFixture[str]) -> None:
    connector.queue(("id",), [(7,)])

    code = main(
        ["--config", missing_config, "--log", "--mode", "fetch_column", "SELECT id FROM accounts WHERE id = ?", "7"],
        session_factory=_factory(connector),
    )

    captured = capsys.readouterr()
    assert code == 0
    assert json.loads(captured.out) == [7]
    assert "[default]" in captured.err
    assert "SELECT id FROM accounts WHERE id = 7" in captured.err
