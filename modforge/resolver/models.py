"""Constraint model for one resolution run."""

from __future__ import annotations

from pydantic import BaseModel, Field

from modforge.diagnostics import Diagnostic, DiagnosticKind


class ResolutionPlan(BaseModel):
    """Output of :meth:`DependencyResolver.resolve`.

    ``install_order`` is only meaningful when :attr:`is_valid` is true; an
    invalid plan leaves it empty and records the reason in ``conflicts`` or
    ``cycles``.
    """

    requested: list[str] = Field(
        default_factory=list, description="User request, deduplicated, first occurrence wins"
    )
    required_modules: list[str] = Field(
        default_factory=list, description="Transitive closure over required edges"
    )
    install_order: list[str] = Field(
        default_factory=list, description="Dependencies before dependents, ties sorted"
    )
    conflicts: list[tuple[str, str]] = Field(
        default_factory=list, description="Canonical (a < b) conflicting pairs"
    )
    cycles: list[list[str]] = Field(
        default_factory=list, description="Sorted members of each cyclic component"
    )
    optional_modules: list[str] = Field(
        default_factory=list, description="Optional targets absent from the closure"
    )
    module_versions: dict[str, str] = Field(
        default_factory=dict, description="Version predicates of catalog modules, unevaluated"
    )
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.conflicts and not self.cycles

    @property
    def custom_modules(self) -> list[str]:
        """Closure members the catalog does not know about."""
        return [
            d.module
            for d in self.diagnostics
            if d.kind == DiagnosticKind.UNKNOWN_MODULE and d.module
        ]
