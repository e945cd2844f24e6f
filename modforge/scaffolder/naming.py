"""Import-path and identifier derivation for generated Go code.

Every import path is anchored at :func:`module_root` and joined with forward
slashes regardless of the host OS.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from typing import Any, Optional

from modforge.catalog import ModuleInfo
from modforge.config import GeneratorConfig


MODULES_DIR = "internal/adapters/http/modules"

# Sub-packages created for every module, in creation order.
MODULE_LAYERS: tuple[str, ...] = ("domain", "repository", "service", "handlers", "dto")


def module_root(config: GeneratorConfig) -> str:
    """Return the import-path root: ``module_path`` override or project name."""
    override = config.custom_values.get("module_path", "").strip()
    if override:
        return override
    return config.project_name.strip()


def import_path(config: GeneratorConfig, *parts: str) -> str:
    """Join *parts* onto :func:`module_root`, skipping empty segments.

    Returns an empty string when the root and every part are empty.
    """
    segments = []
    base = module_root(config).strip("/")
    if base:
        segments.append(base)
    for part in parts:
        trimmed = part.strip("/")
        if trimmed:
            segments.append(trimmed)
    if not segments:
        return ""
    return posixpath.join(*segments)


def capitalize(value: str) -> str:
    """Uppercase the first character only (``"auth"`` -> ``"Auth"``)."""
    if not value:
        return value
    return value[0].upper() + value[1:]


def pluralize(name: str) -> str:
    """Append ``s`` unless *name* already ends in ``s``.

    Irregular English plurals are not handled (``Category`` -> ``Categorys``).
    """
    if not name or name.lower().endswith("s"):
        return name
    return name + "s"


def module_base_dir(module_id: str) -> str:
    """Relative directory of a module tree inside the generated project."""
    return f"{MODULES_DIR}/{module_id}"


def db_test_mode_env(config: GeneratorConfig) -> str:
    """Environment variable that switches generated code to an in-memory DB.

    Derived from the last segment of the import root: ``demo`` ->
    ``DEMO_TEST_MODE``, ``github.com/acme/my-shop`` -> ``MY_SHOP_TEST_MODE``.
    A leading digit gets an ``APP_`` prefix: ``9shop`` -> ``APP_9SHOP_TEST_MODE``.
    """
    last = module_root(config).rstrip("/").rsplit("/", 1)[-1]
    stem = re.sub(r"[^A-Za-z0-9]+", "_", last).strip("_").upper() or "APP"
    if stem[0].isdigit():
        stem = f"APP_{stem}"
    return f"{stem}_TEST_MODE"


@dataclass(frozen=True)
class ModuleNames:
    """All per-module identifiers and paths needed by the module templates."""

    id: str
    cap: str
    plural_cap: str
    category: str
    description: str
    version: str
    base_dir: str
    root_import: str
    domain_import: str
    repository_import: str
    service_import: str
    handlers_import: str

    @classmethod
    def build(
        cls,
        config: GeneratorConfig,
        module_id: str,
        info: Optional[ModuleInfo] = None,
    ) -> "ModuleNames":
        """Derive names for *module_id*; unknown modules get custom defaults."""
        cap = capitalize(module_id)
        base = module_base_dir(module_id)
        return cls(
            id=module_id,
            cap=cap,
            plural_cap=pluralize(cap),
            category=info.category if info else "Custom",
            description=info.description if info else f"Custom {module_id} module",
            version=info.version if info else "",
            base_dir=base,
            root_import=import_path(config, base),
            domain_import=import_path(config, base, "domain"),
            repository_import=import_path(config, base, "repository"),
            service_import=import_path(config, base, "service"),
            handlers_import=import_path(config, base, "handlers"),
        )

    def as_context(self) -> dict[str, Any]:
        """Template context entry for this module."""
        return {
            "id": self.id,
            "cap": self.cap,
            "plural_cap": self.plural_cap,
            "category": self.category,
            "description": self.description,
            "version": self.version,
            "base_dir": self.base_dir,
            "root_import": self.root_import,
            "domain_import": self.domain_import,
            "repository_import": self.repository_import,
            "service_import": self.service_import,
            "handlers_import": self.handlers_import,
        }
