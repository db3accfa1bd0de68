"""Command line runner: execute one templated statement and print the result."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable

from .config import ConnectorConfig, load_config
from .errors import PsqlkitError
from .models import BindValue
from .query import FetchMode
from .session import Session

MODES = tuple(mode.value for mode in FetchMode if not mode.mutating)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="psqlkit", description=__doc__)
    parser.add_argument("sql", help="SQL template using ? placeholders")
    parser.add_argument("binds", nargs="*", help="Positional bind values (null, numbers or text)")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--server", default=None, help="Server profile to use")
    parser.add_argument("--mode", choices=MODES, default=FetchMode.ARRAY.value, help="Result shape")
    parser.add_argument("--log", action="store_true", help="Print the query log to stderr")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def coerce_bind(text: str) -> BindValue:
    """Turn a command line argument into a bind value."""

    if text.lower() == "null":
        return None
    for kind in (int, float):
        try:
            return kind(text)
        except ValueError:
            continue
    return text


def main(
    argv: list[str] | None = None,
    *,
    session_factory: Callable[[ConnectorConfig], Session] = Session,
) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    config = load_config(args.config)
    if args.log:
        config = config.model_copy(update={"log_queries": True})
    session = session_factory(config)
    try:
        if args.server:
            session.use(args.server)
        runner = getattr(session, args.mode)
        result = runner(args.sql, [coerce_bind(value) for value in args.binds], context="cli")
    except PsqlkitError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log:
            for entry in session.query_log:
                print(f"[{entry.server}] {entry.duration_ms:.2f} ms  {entry.query}", file=sys.stderr)
        session.close()
    print(json.dumps(_jsonable(result), indent=2, default=str))
    return 0


def _jsonable(value: Any) -> Any:
    if isinstance(value, SimpleNamespace):
        return _jsonable(vars(value))
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


__all__ = ["coerce_bind", "main", "parse_args"]
