"""Exception hierarchy for modforge.

Every fatal error carries the component that raised it and, when known, the
planner phase, the module id and the file path involved.  Non-fatal
conditions (unknown modules, skipped files) are never raised; they are
recorded as :class:`~modforge.diagnostics.Diagnostic` entries instead.
"""

from __future__ import annotations

from pathlib import Path


class ModforgeError(Exception):
    """Base class for all fatal modforge errors."""

    component: str = "core"

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        module: str | None = None,
        path: str | Path | None = None,
    ) -> None:
        self.message = message
        self.phase = phase
        self.module = module
        self.path = str(path) if path is not None else None
        super().__init__(message)

    def context(self) -> str:
        """Return the ``component > phase > module`` chain for display."""
        parts = [self.component]
        if self.phase:
            parts.append(self.phase)
        if self.module:
            parts.append(f"module '{self.module}'")
        if self.path:
            parts.append(self.path)
        return " > ".join(parts)

    def __str__(self) -> str:
        return f"[{self.context()}] {self.message}"


class InvalidConfigError(ModforgeError):
    """The generator configuration failed validation."""

    component = "config"


class CatalogError(ModforgeError):
    """A module catalog could not be loaded or parsed."""

    component = "catalog"


class ConflictDetectedError(ModforgeError):
    """Two or more modules in the closure declare each other as conflicting."""

    component = "resolver"

    def __init__(self, conflicts: list[tuple[str, str]], **kwargs) -> None:
        self.conflicts = list(conflicts)
        pairs = ", ".join(f"{a} <-> {b}" for a, b in self.conflicts)
        super().__init__(f"Conflicting modules: {pairs}", **kwargs)


class DependencyCycleError(ModforgeError):
    """The required edges of the closure form at least one cycle."""

    component = "resolver"

    def __init__(self, cycles: list[list[str]], **kwargs) -> None:
        self.cycles = [list(c) for c in cycles]
        described = "; ".join("{" + ", ".join(c) + "}" for c in self.cycles)
        super().__init__(f"Dependency cycle detected: {described}", **kwargs)


class TemplateRenderError(ModforgeError):
    """A template failed to render, usually because a parameter is missing."""

    component = "renderer"

    def __init__(self, template_id: str, message: str, **kwargs) -> None:
        self.template_id = template_id
        super().__init__(f"{template_id}: {message}", **kwargs)


class PathEscapeError(ModforgeError):
    """A computed path is absolute, contains ``..`` or would leave the root."""

    component = "planner"


class FilesystemError(ModforgeError):
    """A mkdir, write or chmod call failed."""

    component = "writer"

    def __init__(self, message: str, *, cause: OSError, **kwargs) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}", **kwargs)


class AnnotationError(ModforgeError):
    """An overlay annotation is malformed."""

    component = "scanner"


class DuplicateAnnotationError(AnnotationError):
    """Two overlay annotations claim the same ``(module, symbol)`` pair."""


class OperationCancelledError(ModforgeError):
    """The caller's cancellation signal was set while work was in progress."""
