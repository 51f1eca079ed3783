import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import orjson
import pytest
from rich.console import Console

from dmpid.cli import CLIContext, create_app


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Keep DMPID_ variables from the host out of the CLI configuration."""
    for name in list(os.environ):
        if name.startswith("DMPID_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("DMPID_LOGGING__LEVEL", "warning")
    yield
    CLIContext.reset()


@pytest.fixture
def database(tmp_path: Path) -> Path:
    return tmp_path / "dmpid.db"


@pytest.fixture
def dmpid_cli(console: Console, database: Path) -> Callable[..., int]:
    """Run the CLI against the test database and return the exit code."""
    app = create_app(console=console, error_console=console)

    def _run(*args: str) -> int:
        try:
            app.meta(["--database", str(database), *args])
        except SystemExit as e:
            return e.code if isinstance(e.code, int) else 1
        else:
            return 0

    return _run


@pytest.fixture
def write_json(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Return a function that writes a JSON document under tmp_path."""

    def _write(name: str, data: Any) -> Path:
        path = tmp_path / name
        _ = path.write_bytes(orjson.dumps(data))
        return path

    return _write
