"""Build metadata generation: Compose, Dockerfile, scripts and ``go.mod``.

Runs last in the planning pipeline.  It renders the deployment files, fills
``ProjectPlan.scripts`` and ``ProjectPlan.configuration``, and finalizes the
``go.mod`` record that the base scaffold emitted earlier.
"""

from __future__ import annotations

from typing import Any

from .frontend_gen import FrontendGenerator
from .plan import ProjectPlan
from .templates import TemplateRenderer


GO_VERSION = "1.21"

BASE_DEPENDENCIES: tuple[str, ...] = (
    "go.uber.org/fx v1.20.0",
    "github.com/gorilla/mux v1.8.0",
    "gorm.io/gorm v1.25.5",
    "github.com/golang-jwt/jwt/v5 v5.2.0",
)

DRIVER_VERSION = "v1.5.4"

OBSERVABILITY_DEPENDENCIES: tuple[str, ...] = (
    "github.com/prometheus/client_golang v1.17.0",
    "go.opentelemetry.io/otel v1.21.0",
)

# Compose service parameters per database.  SQLite has no service.
_DATABASE_SERVICES: dict[str, dict[str, Any]] = {
    "postgres": {
        "service": "postgres",
        "image": "postgres:15-alpine",
        "env": ["POSTGRES_DB={name}", "POSTGRES_USER=admin", "POSTGRES_PASSWORD=password"],
        "port": "5432",
        "data_dir": "/var/lib/postgresql/data",
    },
    "mysql": {
        "service": "mysql",
        "image": "mysql:8.0",
        "env": [
            "MYSQL_DATABASE={name}",
            "MYSQL_USER=admin",
            "MYSQL_PASSWORD=password",
            "MYSQL_ROOT_PASSWORD=rootpassword",
        ],
        "port": "3306",
        "data_dir": "/var/lib/mysql",
    },
}


def database_service(database: str, project_name: str) -> dict[str, Any]:
    """Return the Compose service parameters for *database*."""
    service = _DATABASE_SERVICES.get(database)
    if service is None:
        return {"service": "", "image": "", "env": [], "port": "", "data_dir": ""}
    return {
        **service,
        "env": [line.format(name=project_name) for line in service["env"]],
    }


def compute_dependencies(
    database: str,
    observability: bool,
    frontend: str,
) -> list[str]:
    """Return the sorted, de-duplicated ``go.mod`` require lines."""
    deps = set(BASE_DEPENDENCIES)
    deps.add(f"gorm.io/driver/{database} {DRIVER_VERSION}")
    # Test mode always falls back to SQLite.
    deps.add(f"gorm.io/driver/sqlite {DRIVER_VERSION}")
    if observability:
        deps.update(OBSERVABILITY_DEPENDENCIES)
    deps.update(FrontendGenerator.dependencies(frontend))
    return sorted(deps)


class BuildMetadataGenerator:
    """Adds deployment files and build metadata to a :class:`ProjectPlan`."""

    # Template name -> output path
    _BUILD_FILES: tuple[tuple[str, str], ...] = (
        ("docker-compose.yml.j2", "docker-compose.yml"),
        ("Dockerfile.j2", "Dockerfile"),
        ("build.sh.j2", "scripts/build.sh"),
        ("Makefile.j2", "Makefile"),
        ("app.yaml.j2", "configs/app.yaml"),
    )

    _EXECUTABLE = frozenset({"scripts/build.sh"})

    def __init__(self, renderer: TemplateRenderer) -> None:
        self.renderer = renderer

    def generate(self, plan: ProjectPlan, context: dict[str, Any]) -> None:
        """Render the build files into *plan* and finalize ``go.mod``.

        Args:
            plan: The plan being built; must already contain ``go.mod``.
            context: Project template context from the planner.
        """
        dependencies = compute_dependencies(
            context["database"], context["observability"], context["frontend"]
        )
        scripts = self._scripts(context)
        build_ctx = {
            **context,
            "dependencies": dependencies,
            "scripts": scripts,
            "db": database_service(context["database"], context["project_name"]),
        }

        for template_name, output_path in self._BUILD_FILES:
            plan.add_file(
                output_path,
                self.renderer.render(template_name, build_ctx),
                template_id=template_name,
                executable=output_path in self._EXECUTABLE,
            )

        plan.replace_content("go.mod", self.renderer.render("go.mod.j2", build_ctx))
        plan.dependencies = dependencies
        plan.scripts = dict(scripts)
        plan.configuration = self._configuration(context)

    # -- Helpers -----------------------------------------------------------

    @staticmethod
    def _scripts(context: dict[str, Any]) -> dict[str, str]:
        return {
            "build": "go build -o bin/server ./cmd/server",
            "test": f"{context['test_mode_env']}=1 go test ./...",
            "run": "go run ./cmd/server",
        }

    @staticmethod
    def _configuration(context: dict[str, Any]) -> dict[str, Any]:
        return {
            "project_name": context["project_name"],
            "module_root": context["module_root"],
            "go_version": context["go_version"],
            "database": context["database"],
            "frontend": context["frontend"],
            "auth": context["auth"],
            "enterprise": context["enterprise"],
            "observability": context["observability"],
            "test_mode_env": context["test_mode_env"],
            "features": list(context["features"]),
            "install_order": list(context["install_order"]),
            "custom_modules": list(context["custom_modules"]),
            "optional_modules": list(context["optional_modules"]),
            "module_versions": dict(context["module_versions"]),
        }
