"""Overlay annotation scanner.

Walks the ``overrides/`` and ``extends/`` trees of a template corpus and
collects the ``shadow``/``wrap`` claims they make on module symbols.  Two
syntaxes are understood:

Comment markers in source files::

    // @modforge:shadow module:auth symbol:NewAuthService priority:10

A top-level map in data files (YAML or JSON)::

    modforge:
      wrap:
        module: invoice
        symbol: InvoiceHandler

Each child of the prefix map may also be a list of such entries.  The scan is
a pre-flight check: two claims on the same ``(module, symbol)`` pair are an
error, as are malformed markers.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from modforge.errors import AnnotationError, DuplicateAnnotationError


OVERLAY_DIRS: tuple[str, ...] = ("overrides", "extends")

SOURCE_SUFFIXES = frozenset({".go", ".py", ".ts", ".tsx", ".js", ".templ", ".sql", ".sh"})
DATA_SUFFIXES = frozenset({".yaml", ".yml", ".json"})

MODES: tuple[str, ...] = ("shadow", "wrap")

_COMMENT_PREFIXES: tuple[str, ...] = ("//", "#", "--")
_KNOWN_KEYS = frozenset({"module", "symbol", "priority"})


class Annotation(BaseModel):
    """One shadow or wrap claim found in an overlay file."""
    mode: Literal["shadow", "wrap"]
    module: str
    symbol: str
    priority: int = Field(default=0, description="Higher wins when overlays are applied")
    source: str = Field(..., description="File path relative to the scan root")
    line: Optional[int] = Field(default=None, description="1-based line for comment markers")

    @property
    def location(self) -> str:
        return f"{self.source}:{self.line}" if self.line else self.source

    @property
    def construct_id(self) -> str:
        return f"{self.mode}:{self.module}:{self.symbol}"


def scan_annotations(root: str | Path, prefix: str = "modforge") -> list[Annotation]:
    """Collect annotations under ``root/overrides`` then ``root/extends``.

    Files are visited in sorted path order, so the result is deterministic.
    Missing overlay directories are ignored.

    Raises:
        AnnotationError: A marker is malformed or a file cannot be read.
        DuplicateAnnotationError: Two annotations claim the same
            ``(module, symbol)`` pair.
    """
    base = Path(root)
    marker = re.compile(rf"@{re.escape(prefix)}:({'|'.join(MODES)})\b(.*)$")
    found: list[Annotation] = []
    claimed: dict[tuple[str, str], Annotation] = {}

    for overlay in OVERLAY_DIRS:
        directory = base / overlay
        if not directory.is_dir():
            continue
        for path in sorted(p for p in directory.rglob("*") if p.is_file()):
            source = path.relative_to(base).as_posix()
            suffix = path.suffix.lower()
            if suffix in SOURCE_SUFFIXES:
                annotations = _parse_source(_read(path, source), source, marker)
            elif suffix in DATA_SUFFIXES:
                annotations = _parse_data(_read(path, source), source, prefix, suffix == ".json")
            else:
                continue

            for annotation in annotations:
                key = (annotation.module, annotation.symbol)
                previous = claimed.get(key)
                if previous is not None:
                    raise DuplicateAnnotationError(
                        f"Duplicate annotation for module '{annotation.module}' symbol "
                        f"'{annotation.symbol}': {previous.location} and {annotation.location}",
                        module=annotation.module,
                        path=annotation.source,
                    )
                claimed[key] = annotation
                found.append(annotation)

    return found


def by_priority(annotations: list[Annotation]) -> list[Annotation]:
    """Order annotations the way overlays are applied: highest priority first.

    Ties keep scan order.
    """
    return sorted(annotations, key=lambda a: -a.priority)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _read(path: Path, source: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise AnnotationError(f"Cannot read overlay file: {exc}", path=source) from exc


def _parse_source(text: str, source: str, marker: re.Pattern[str]) -> list[Annotation]:
    """Parse comment-line markers from a source file."""
    annotations = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        stripped = raw.strip()
        if not stripped.startswith(_COMMENT_PREFIXES):
            continue
        match = marker.search(stripped)
        if match is None:
            continue
        mode, rest = match.group(1), match.group(2)
        fields: dict[str, str] = {}
        for token in rest.split():
            key, sep, value = token.partition(":")
            if not sep or not key or not value:
                raise AnnotationError(f"Invalid token {token!r} on line {lineno}", path=source)
            if key not in _KNOWN_KEYS:
                raise AnnotationError(f"Unknown field {key!r} on line {lineno}", path=source)
            fields[key] = value
        annotations.append(_build(mode, fields, source, lineno))
    return annotations


def _parse_data(text: str, source: str, prefix: str, is_json: bool = False) -> list[Annotation]:
    """Parse the ``<prefix>`` map of a YAML or JSON data file."""
    try:
        data = json.loads(text) if is_json else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise AnnotationError(f"Cannot parse overlay data: {exc}", path=source) from exc
    if not isinstance(data, dict) or prefix not in data:
        return []

    section = data[prefix]
    if not isinstance(section, dict):
        raise AnnotationError(f"'{prefix}' must be a mapping of modes", path=source)

    annotations = []
    for mode, entries in section.items():
        if mode not in MODES:
            raise AnnotationError(f"Unknown mode {mode!r}", path=source)
        for entry in entries if isinstance(entries, list) else [entries]:
            if not isinstance(entry, dict):
                raise AnnotationError(f"'{mode}' entry must be a mapping", path=source)
            unknown = set(entry) - _KNOWN_KEYS
            if unknown:
                raise AnnotationError(f"Unknown field {sorted(unknown)[0]!r} in '{mode}'", path=source)
            annotations.append(_build(mode, entry, source, None))
    return annotations


def _build(mode: str, fields: dict[str, Any], source: str, line: Optional[int]) -> Annotation:
    module = str(fields.get("module") or "").strip()
    symbol = str(fields.get("symbol") or "").strip()
    where = f" on line {line}" if line else f" in '{mode}'"
    if not module or not symbol:
        raise AnnotationError(f"Missing module or symbol{where}", path=source)

    raw_priority = fields.get("priority", 0)
    if isinstance(raw_priority, bool):
        raise AnnotationError(f"Invalid priority {raw_priority!r}{where}", path=source)
    try:
        priority = int(raw_priority)
    except (TypeError, ValueError) as exc:
        raise AnnotationError(f"Invalid priority {raw_priority!r}{where}", path=source) from exc
    if isinstance(raw_priority, float) and raw_priority != priority:
        raise AnnotationError(f"Invalid priority {raw_priority!r}{where}", path=source)

    return Annotation(
        mode=mode,
        module=module,
        symbol=symbol,
        priority=priority,
        source=source,
        line=line,
    )
