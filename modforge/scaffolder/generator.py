"""Main scaffolding orchestrator.

Turns a :class:`~modforge.config.GeneratorConfig` into a
:class:`~modforge.scaffolder.plan.ProjectPlan` in five phases:

1. resolve the requested modules against the catalog,
2. emit the base scaffold (directories, server entry point, core providers),
3. expand every module in install order,
4. add frontend stubs when a frontend kind is selected,
5. add build metadata and finalize ``go.mod``.

Planning never touches the filesystem; hand the plan to
:class:`~modforge.scaffolder.writer.FilesystemWriter` to materialize it.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from modforge.catalog import ModuleCatalog
from modforge.config import GeneratorConfig
from modforge.diagnostics import CancelSignal
from modforge.errors import ModforgeError, OperationCancelledError
from modforge.resolver import DependencyResolver, ResolutionPlan

from .build_gen import GO_VERSION, BuildMetadataGenerator
from .frontend_gen import FrontendGenerator
from .naming import (
    MODULE_LAYERS,
    ModuleNames,
    db_test_mode_env,
    import_path,
    module_root,
)
from .plan import ProjectPlan
from .templates import TemplateRenderer


ANNOTATION_PREFIX = "modforge"


# ---------------------------------------------------------------------------
# Directory layout
# ---------------------------------------------------------------------------

BASE_DIRECTORIES: tuple[str, ...] = (
    "cmd/server",
    "cmd/cli",
    "cmd/migrate",
    "internal/core",
    "internal/adapters/http",
    "internal/adapters/http/modules",
    "internal/adapters/cli",
    "internal/adapters/mcp",
    "internal/domain",
    "internal/domain/repository",
    "internal/usecase",
    "internal/infrastructure",
    "pkg/utils",
    "pkg/errors",
    "configs",
    "migrations",
    "scripts",
    "docs",
    "deployments",
    "test",
)

ENTERPRISE_DIRECTORIES: tuple[str, ...] = (
    "internal/audit",
    "internal/security",
    "internal/compliance",
    "internal/monitoring",
)

# Template name -> output path, in emission order
_BASE_FILES: tuple[tuple[str, str], ...] = (
    ("main.go.j2", "cmd/server/main.go"),
    ("main_test.go.j2", "cmd/server/main_test.go"),
    ("go.mod.j2", "go.mod"),
    ("README.md.j2", "README.md"),
    ("providers.go.j2", "internal/core/providers.go"),
    ("providers_test.go.j2", "internal/core/providers_test.go"),
)

# Template name -> output path relative to the module directory.  ``{id}`` is
# replaced by the module id.
_MODULE_FILES: tuple[tuple[str, str], ...] = (
    ("module.go.j2", "module.go"),
    ("domain.go.j2", "domain/{id}.go"),
    ("repository.go.j2", "repository/{id}_repository.go"),
    ("service.go.j2", "service/{id}_service.go"),
    ("handler.go.j2", "handlers/{id}_handler.go"),
)

_MODULE_TEST_FILES: tuple[tuple[str, str], ...] = (
    ("module_test.go.j2", "module_test.go"),
    ("repository_test.go.j2", "repository/{id}_repository_test.go"),
    ("service_test.go.j2", "service/{id}_service_test.go"),
    ("handler_test.go.j2", "handlers/{id}_handler_test.go"),
)


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class ProjectPlanner:
    """Builds a :class:`ProjectPlan` from a configuration and a catalog.

    Given the same catalog, configuration and templates the resulting plan
    is identical run to run: modules are expanded in the resolver's
    deterministic install order and every list in the plan is ordered.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        renderer: Optional[TemplateRenderer] = None,
    ) -> None:
        self.catalog = catalog
        self.resolver = DependencyResolver(catalog)
        self.renderer = renderer or TemplateRenderer()
        self.frontend_gen = FrontendGenerator(self.renderer)
        self.build_gen = BuildMetadataGenerator(self.renderer)

    # -- Public API --------------------------------------------------------

    def plan(
        self,
        config: GeneratorConfig,
        cancel: Optional[CancelSignal] = None,
    ) -> ProjectPlan:
        """Produce the full project plan for *config*.

        Raises:
            ConflictDetectedError: If the requested closure has conflicts.
            DependencyCycleError: If required edges form a cycle.
            TemplateRenderError: If a template cannot be rendered.
            PathEscapeError: If a computed path is unsafe.
            OperationCancelledError: If *cancel* is set between steps.
        """
        _check_cancel(cancel, "resolve")
        with _phase("resolve"):
            resolution = self.resolver.resolve_or_raise(
                config.features, observability=config.observability
            )

        plan = ProjectPlan(
            root_path=str(config.output_path),
            diagnostics=list(resolution.diagnostics),
        )
        context = self._build_context(config, resolution)

        _check_cancel(cancel, "scaffold")
        with _phase("scaffold"):
            self._scaffold_base(plan, config, context)

        for module in context["modules"]:
            _check_cancel(cancel, "modules", module["id"])
            with _phase("modules", module["id"]):
                self._expand_module(plan, context, module)

        if config.frontend != "none":
            _check_cancel(cancel, "frontend")
            with _phase("frontend"):
                self.frontend_gen.generate(plan, context)

        _check_cancel(cancel, "build")
        with _phase("build"):
            self.build_gen.generate(plan, context)

        return plan

    # -- Context building --------------------------------------------------

    def _build_context(
        self, config: GeneratorConfig, resolution: ResolutionPlan
    ) -> dict[str, Any]:
        """Build the Jinja2 template context shared by every template."""
        modules = [
            ModuleNames.build(config, module_id, self.catalog.lookup(module_id)).as_context()
            for module_id in resolution.install_order
        ]
        return {
            "prefix": ANNOTATION_PREFIX,
            "project_name": config.project_name,
            "module_root": module_root(config),
            "core_import": import_path(config, "internal/core"),
            "go_version": GO_VERSION,
            "database": config.database,
            "frontend": config.frontend,
            "auth": config.auth,
            "enterprise": config.enterprise,
            "observability": config.observability,
            "test_mode_env": db_test_mode_env(config),
            "custom_values": dict(config.custom_values),
            "features": list(resolution.requested),
            "install_order": list(resolution.install_order),
            "custom_modules": resolution.custom_modules,
            "optional_modules": list(resolution.optional_modules),
            "module_versions": dict(resolution.module_versions),
            "modules": modules,
            # Finalized by the build metadata phase.
            "dependencies": [],
        }

    # -- Phase 2: base scaffold --------------------------------------------

    def _scaffold_base(
        self,
        plan: ProjectPlan,
        config: GeneratorConfig,
        context: dict[str, Any],
    ) -> None:
        for directory in BASE_DIRECTORIES:
            plan.add_directory(directory)
        if config.enterprise:
            for directory in ENTERPRISE_DIRECTORIES:
                plan.add_directory(directory)

        for template_name, output_path in _BASE_FILES:
            plan.add_file(
                output_path,
                self.renderer.render(template_name, context),
                template_id=template_name,
            )

    # -- Phase 3: per-module expansion -------------------------------------

    def _expand_module(
        self,
        plan: ProjectPlan,
        context: dict[str, Any],
        module: dict[str, Any],
    ) -> None:
        """Emit the directory tree, sources and tests of one module."""
        base_dir = module["base_dir"]
        plan.add_directory(base_dir)
        for layer in MODULE_LAYERS:
            plan.add_directory(f"{base_dir}/{layer}")

        module_ctx = {**context, "module": module}
        for template_name, relative in _MODULE_FILES + _MODULE_TEST_FILES:
            plan.add_file(
                f"{base_dir}/{relative.format(id=module['id'])}",
                self.renderer.render(template_name, module_ctx),
                template_id=template_name,
            )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _phase(name: str, module: Optional[str] = None) -> Iterator[None]:
    """Annotate escaping :class:`ModforgeError` instances with phase and module."""
    try:
        yield
    except ModforgeError as exc:
        if exc.phase is None:
            exc.phase = name
        if exc.module is None and module is not None:
            exc.module = module
        raise


def _check_cancel(
    cancel: Optional[CancelSignal], phase: str, module: Optional[str] = None
) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Planning cancelled", phase=phase, module=module)
