"""Module catalog: read-only lookup of module metadata by identifier.

The resolver only needs ``lookup(module_id)``; an unknown id returns ``None``
and the resolver decides what to do with it.  Three sources are provided:

* :func:`default_catalog` -- the built-in module table.
* :func:`load_catalog` -- a YAML or JSON manifest on disk.
* :func:`fetch_catalog` -- the same manifest served over HTTP.

Manifest format::

    modules:
      invoice:
        category: Business
        description: Invoice generation and management
        required: [contact, product]
        optional: [payment]
        conflicts: []
        version: ">=1.0"
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from modforge.errors import CatalogError


MODULE_ID_RE = re.compile(r"^[a-z0-9_]+$")

# Module ids become Go package names and import aliases in the entry file.
GO_KEYWORDS = frozenset({
    "break", "case", "chan", "const", "continue", "default", "defer", "else",
    "fallthrough", "for", "func", "go", "goto", "if", "import", "interface",
    "map", "package", "range", "return", "select", "struct", "switch", "type", "var",
})

GO_PREDECLARED = frozenset({
    "any", "bool", "byte", "comparable", "complex64", "complex128", "error",
    "float32", "float64", "int", "int8", "int16", "int32", "int64", "rune",
    "string", "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
    "true", "false", "iota", "nil",
    "append", "cap", "clear", "close", "complex", "copy", "delete", "imag",
    "len", "make", "max", "min", "new", "panic", "print", "println", "real", "recover",
})

# Names already bound in the generated cmd/server/main.go before module aliases.
ENTRY_FILE_NAMES = frozenset({
    "context", "log", "http", "os", "signal", "syscall", "time", "mux", "fx", "core",
    "main", "init", "ctx", "stop", "builder", "app",
})

RESERVED_MODULE_IDS = GO_KEYWORDS | GO_PREDECLARED | ENTRY_FILE_NAMES | {"_"}


def is_module_id(value: str) -> bool:
    """Return ``True`` if *value* uses only the module identifier alphabet."""
    return bool(MODULE_ID_RE.fullmatch(value))


def check_module_id(value: str) -> str:
    """Validate *value* as a module id usable in generated Go code.

    Raises:
        ValueError: The id is outside the alphabet, starts with a digit or
            is a reserved Go or entry-file name.
    """
    if not is_module_id(value):
        raise ValueError(f"invalid module identifier: {value!r}")
    if value[0].isdigit():
        raise ValueError(f"module identifier must not start with a digit: {value!r}")
    if value in RESERVED_MODULE_IDS:
        raise ValueError(f"module identifier is reserved in generated Go code: {value!r}")
    return value


# ---------------------------------------------------------------------------
# ModuleInfo
# ---------------------------------------------------------------------------


class ModuleInfo(BaseModel):
    """Immutable metadata record for one catalog module."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Module identifier")
    category: str = Field(default="Custom", description="Free-form classification")
    description: str = Field(default="", description="Human-readable summary")
    required: tuple[str, ...] = Field(
        default=(), description="Modules that must be present, in declaration order"
    )
    optional: tuple[str, ...] = Field(
        default=(), description="Modules this one benefits from but does not need"
    )
    conflicts: frozenset[str] = Field(
        default_factory=frozenset, description="Modules that must not appear alongside"
    )
    version: str = Field(default="", description="Version predicate, e.g. '>=1.2'")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return check_module_id(value)

    @field_validator("required", "optional", "conflicts")
    @classmethod
    def _check_references(cls, value: Iterable[str]) -> Any:
        for ref in value:
            check_module_id(ref)
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "ModuleInfo":
        overlap = set(self.required) & self.conflicts
        if overlap:
            raise ValueError(
                f"module {self.name!r} both requires and conflicts with: "
                + ", ".join(sorted(overlap))
            )
        if (
            self.name in self.required
            or self.name in self.optional
            or self.name in self.conflicts
        ):
            raise ValueError(f"module {self.name!r} references itself")
        return self


# ---------------------------------------------------------------------------
# Catalog implementations
# ---------------------------------------------------------------------------


class ModuleCatalog(Protocol):
    """Capability surface consumed by the resolver and planner."""

    def lookup(self, module_id: str) -> Optional[ModuleInfo]: ...


class StaticCatalog(Mapping[str, ModuleInfo]):
    """In-memory catalog backed by a plain dict."""

    def __init__(self, modules: Iterable[ModuleInfo] = ()) -> None:
        self._modules: dict[str, ModuleInfo] = {}
        for info in modules:
            if info.name in self._modules:
                raise CatalogError(f"Duplicate module in catalog: {info.name}", module=info.name)
            self._modules[info.name] = info

    def lookup(self, module_id: str) -> Optional[ModuleInfo]:
        return self._modules.get(module_id)

    def __getitem__(self, module_id: str) -> ModuleInfo:
        return self._modules[module_id]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._modules))

    def __len__(self) -> int:
        return len(self._modules)

    @classmethod
    def from_manifest(cls, data: Any) -> "StaticCatalog":
        """Build a catalog from a parsed manifest dict (see module docstring)."""
        if not isinstance(data, dict) or not isinstance(data.get("modules"), dict):
            raise CatalogError("Catalog manifest must contain a 'modules' mapping")

        infos: list[ModuleInfo] = []
        for name, raw in data["modules"].items():
            raw = raw or {}
            if not isinstance(raw, dict):
                raise CatalogError(f"Entry for {name!r} must be a mapping", module=str(name))
            try:
                infos.append(ModuleInfo(name=str(name), **raw))
            except (ValidationError, TypeError) as exc:
                raise CatalogError(f"Invalid entry: {exc}", module=str(name)) from exc
        return cls(infos)


# ---------------------------------------------------------------------------
# Built-in table
# ---------------------------------------------------------------------------

# name -> (category, description, required, optional, conflicts)
_DEFAULT_MODULES: dict[str, tuple[str, str, tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = {
    "user": ("Core", "User management and authentication core", (), ("notification", "audit"), ()),
    "auth": ("Core", "Authentication and authorization system", ("user",), (), ()),
    "local_auth": ("Core", "Username and password login without SSO", ("user",), (), ("oauthsso",)),
    "organization": (
        "Core", "Multi-tenant organization management",
        ("user", "auth"), ("contact", "calendar"), (),
    ),
    "contact": (
        "Business", "Customer and vendor contact management",
        ("user", "organization"), ("calendar",), (),
    ),
    "product": (
        "Business", "Product catalog and management",
        ("user", "organization"), ("inventory",), (),
    ),
    "invoice": (
        "Business", "Invoice generation and management",
        ("user", "organization", "product", "contact"), ("payment", "verifactu", "audit"), (),
    ),
    "payment": ("Integration", "Payment processing and gateway integration", ("user", "invoice"), (), ()),
    "inventory": (
        "Business", "Inventory and warehouse management",
        ("user", "organization", "product"), (), (),
    ),
    "calendar": (
        "Business", "Scheduling and calendar management",
        ("user", "organization", "contact"), (), (),
    ),
    "verifactu": ("Compliance", "Spanish fiscal compliance (VeriFACTU)", ("invoice", "organization"), (), ()),
    "oauthsso": ("Integration", "OAuth and SSO integration", ("user", "auth"), (), ("local_auth",)),
    "realtime": ("Infrastructure", "Real-time communication and WebSocket support", ("user", "auth"), (), ()),
    "audit": ("Compliance", "Audit logging and compliance tracking", ("user",), (), ()),
    "notification": ("Infrastructure", "Multi-channel notification system", ("user",), (), ()),
}


def default_catalog() -> StaticCatalog:
    """Return the built-in module catalog."""
    return StaticCatalog(
        ModuleInfo(
            name=name,
            category=category,
            description=description,
            required=required,
            optional=optional,
            conflicts=frozenset(conflicts),
            version=">=1.0",
        )
        for name, (category, description, required, optional, conflicts) in _DEFAULT_MODULES.items()
    )


# ---------------------------------------------------------------------------
# Manifest loading
# ---------------------------------------------------------------------------


def load_catalog(path: str | Path) -> StaticCatalog:
    """Load a catalog manifest from a YAML or JSON file.

    Raises:
        CatalogError: If the file is missing or not a valid manifest.
    """
    file_path = Path(path)
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogError(f"Cannot read catalog manifest: {exc}", path=file_path) from exc
    try:
        data = _parse_manifest(raw, is_json=file_path.suffix.lower() == ".json")
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CatalogError(f"Malformed catalog manifest: {exc}", path=file_path) from exc
    return StaticCatalog.from_manifest(data)


def _parse_manifest(text: str, is_json: bool) -> Any:
    if is_json:
        return json.loads(text)
    return yaml.safe_load(text)


async def fetch_catalog(
    url: str,
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> StaticCatalog:
    """Fetch a catalog manifest over HTTP.

    Args:
        url: Location of a YAML or JSON manifest.
        timeout: Total request timeout in seconds.
        client: Optional pre-configured client (its own timeout applies).

    Raises:
        CatalogError: On connection failure, timeout, non-2xx status or a
            malformed manifest.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=min(timeout, 3.0)))

    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise CatalogError(f"Timed out fetching catalog from {url}") from exc
    except httpx.HTTPStatusError as exc:
        raise CatalogError(
            f"Catalog request to {url} failed with HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise CatalogError(f"Cannot fetch catalog from {url}: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()

    is_json = (
        response.url.path.lower().endswith(".json")
        or "json" in response.headers.get("content-type", "").lower()
    )
    try:
        data = _parse_manifest(response.text, is_json)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CatalogError(f"Malformed catalog manifest at {url}: {exc}") from exc
    return StaticCatalog.from_manifest(data)
