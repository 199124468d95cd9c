"""Shared test fixtures for routegen.

Provides reusable fixtures for loading the fixture documents, isolating
configuration, managing output state, running CLI commands, and importing
generated packages. These fixtures are automatically discovered by pytest
and available to all test modules without explicit imports.
"""

from __future__ import annotations

import importlib
import itertools
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

import pytest
import yaml

from routegen.models import ApiDocument, GeneratedPackage
from routegen.output import OutputFormat, OutputManager, reset_output, set_output
from routegen.parser import parse_document


FIXTURES_DIR = Path(__file__).parent / "fixtures"

_package_counter = itertools.count()


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Raw document fixtures (plain dicts loaded from YAML files)
# ---------------------------------------------------------------------------


@pytest.fixture
def blog_raw() -> dict[str, Any]:
    """Load the raw blog document (posts and comments)."""
    with open(FIXTURES_DIR / "test-api.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def shop_raw() -> dict[str, Any]:
    """Load the raw shop document (every body media type, component refs)."""
    with open(FIXTURES_DIR / "shop-api.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def blog_routes() -> str:
    return (FIXTURES_DIR / "blog.routes").read_text(encoding="utf-8")


@pytest.fixture
def shop_routes() -> str:
    return (FIXTURES_DIR / "shop.routes").read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Parsed document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def blog_document(blog_raw: dict[str, Any]) -> ApiDocument:
    return parse_document(blog_raw)


@pytest.fixture
def shop_document(shop_raw: dict[str, Any]) -> ApiDocument:
    return parse_document(shop_raw)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_STATE_HOME at tmp_path so crash logs never reach the real
    home directory, clears all ROUTEGEN_* environment variables, and
    changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    for var in ["ROUTEGEN_OUTPUT_DIR", "ROUTEGEN_SPEC"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Generated package import fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def load_generated(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Callable[[GeneratedPackage], ModuleType]:
    """Write a generated package under tmp_path and import it.

    Every call uses a fresh package name so classes from different tests
    never share a module. The imported modules are dropped from
    ``sys.modules`` after the test.

    Returns:
        A function taking a :class:`GeneratedPackage` and returning the
        imported root module.
    """
    from routegen.codegen import write_package

    monkeypatch.syspath_prepend(str(tmp_path))
    loaded: list[str] = []

    def _load(package: GeneratedPackage) -> ModuleType:
        name = f"generated_{next(_package_counter)}"
        write_package(package, tmp_path / name)
        importlib.invalidate_caches()
        loaded.append(name)
        return importlib.import_module(name)

    yield _load

    for name in loaded:
        for module in [m for m in sys.modules if m == name or m.startswith(f"{name}.")]:
            del sys.modules[module]
