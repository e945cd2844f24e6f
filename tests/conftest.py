"""Shared pytest fixtures for the modforge test suite.

Provides reusable fixtures for:
- Built-in and hand-written module catalogs
- Generator configurations rooted in a temporary directory
- Planner, renderer and writer instances
- Overlay trees for the annotation scanner
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from modforge.catalog import ModuleInfo, StaticCatalog, default_catalog
from modforge.config import GeneratorConfig
from modforge.scaffolder import FilesystemWriter, ProjectPlanner, TemplateRenderer


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

@pytest.fixture
def builtin_catalog() -> StaticCatalog:
    """The catalog shipped with modforge."""
    return default_catalog()


@pytest.fixture
def small_catalog() -> StaticCatalog:
    """Hand-written catalog covering the documented scenarios.

    - ``auth``: no edges
    - ``invoices`` requires ``contacts``
    - ``sqlite_only`` conflicts with ``postgres_only``
    - ``a`` and ``b`` require each other
    - ``c`` requires ``a`` (downstream of the cycle)
    """
    return StaticCatalog(
        [
            ModuleInfo(name="auth", category="Core", description="Authentication"),
            ModuleInfo(name="contacts", category="Business", description="Contacts"),
            ModuleInfo(
                name="invoices",
                category="Business",
                description="Invoices",
                required=("contacts",),
                optional=("payments",),
                version="^2.0",
            ),
            ModuleInfo(name="sqlite_only", conflicts=frozenset({"postgres_only"})),
            ModuleInfo(name="postgres_only"),
            ModuleInfo(name="a", required=("b",)),
            ModuleInfo(name="b", required=("a",)),
            ModuleInfo(name="c", required=("a",)),
        ]
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Directory generated projects are written to (not created up front)."""
    return tmp_path / "out"


@pytest.fixture
def make_config(output_dir: Path) -> Callable[..., GeneratorConfig]:
    """Factory for ``GeneratorConfig`` with ``project_name="demo"`` defaults."""

    def _make(**overrides: Any) -> GeneratorConfig:
        data: dict[str, Any] = {
            "project_name": "demo",
            "output_path": output_dir,
            "features": [],
            "database": "sqlite",
            "frontend": "none",
            "auth": "jwt",
        }
        data.update(overrides)
        return GeneratorConfig(**data)

    return _make


# ---------------------------------------------------------------------------
# Scaffolder components
# ---------------------------------------------------------------------------

@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def planner(small_catalog: StaticCatalog, renderer: TemplateRenderer) -> ProjectPlanner:
    """Planner over the hand-written catalog."""
    return ProjectPlanner(small_catalog, renderer)


@pytest.fixture
def builtin_planner(builtin_catalog: StaticCatalog, renderer: TemplateRenderer) -> ProjectPlanner:
    """Planner over the built-in catalog."""
    return ProjectPlanner(builtin_catalog, renderer)


@pytest.fixture
def writer() -> FilesystemWriter:
    return FilesystemWriter()


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class FlagSignal:
    """Cancellation signal that becomes set after *after* checks."""

    def __init__(self, after: int = 0) -> None:
        self.after = after
        self.checks = 0

    def is_set(self) -> bool:
        self.checks += 1
        return self.checks > self.after


@pytest.fixture
def flag_signal() -> type[FlagSignal]:
    return FlagSignal


# ---------------------------------------------------------------------------
# Overlay trees
# ---------------------------------------------------------------------------

@pytest.fixture
def write_overlay(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a file below ``tmp_path/corpus`` and return the corpus root."""
    root = tmp_path / "corpus"

    def _write(relative: str, content: str) -> Path:
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(content), encoding="utf-8")
        return root

    return _write
