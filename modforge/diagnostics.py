"""Non-fatal diagnostics accumulated by the resolver, planner and writer."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, Field


class DiagnosticKind(str, Enum):
    """Classification of a diagnostic entry."""
    EMPTY_REQUEST = "empty_request"
    UNKNOWN_MODULE = "unknown_module"
    MISSING_OPTIONAL = "missing_optional"
    DEPENDENCY_CYCLE = "dependency_cycle"
    CONFLICT = "conflict"
    MISSING_CORE = "missing_core"
    RECOMMENDATION = "recommendation"
    FILE_EXISTS_SKIPPED = "file_exists_skipped"


class Diagnostic(BaseModel):
    """A single warning or informational note."""
    kind: DiagnosticKind = Field(..., description="What kind of condition was observed")
    message: str = Field(..., description="Human-readable explanation")
    module: Optional[str] = Field(default=None, description="Module id involved, if any")
    path: Optional[str] = Field(default=None, description="Relative file path involved, if any")


class CancelSignal(Protocol):
    """Anything exposing ``is_set()``: ``threading.Event``, ``asyncio.Event``."""

    def is_set(self) -> bool: ...
