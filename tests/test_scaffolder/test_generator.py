"""Tests for the project planner.

Covers:
- Base scaffold for an empty feature set
- Per-module expansion (directories, sources, tests, entry-file wiring)
- Conflicts and cycles surfaced as errors with phase annotation
- Frontend, enterprise and observability variants
- Build metadata (scripts, configuration echo, go.mod)
- Plan-wide invariants: unique paths, parents listed, safe paths,
  import paths under the module root, byte-identical manifests
- Cancellation between phases
"""

from __future__ import annotations

import re

import pytest

from modforge.config import GeneratorConfig
from modforge.diagnostics import DiagnosticKind
from modforge.errors import (
    ConflictDetectedError,
    DependencyCycleError,
    InvalidConfigError,
    OperationCancelledError,
    TemplateRenderError,
)
from modforge.scaffolder import ProjectPlanner
from modforge.scaffolder.build_gen import (
    BASE_DEPENDENCIES,
    OBSERVABILITY_DEPENDENCIES,
    compute_dependencies,
    database_service,
)
from modforge.scaffolder.generator import BASE_DIRECTORIES, ENTERPRISE_DIRECTORIES
from modforge.scaffolder.templates import TemplateRenderer


pytestmark = pytest.mark.unit

MODULES_DIR = "internal/adapters/http/modules"

# Import paths in generated wiring that come from outside the project.
THIRD_PARTY_PREFIXES = ("github.com/gorilla/", "go.uber.org/", "gorm.io/")

_IMPORT_BLOCK_RE = re.compile(r"^import \((.*?)^\)", re.MULTILINE | re.DOTALL)
_IMPORT_LINE_RE = re.compile(r'"([^"]+)"')


def _imports(source: str) -> list[str]:
    block = _IMPORT_BLOCK_RE.search(source)
    assert block is not None, "no import block"
    return _IMPORT_LINE_RE.findall(block.group(1))


def _module_files(plan, module_id: str) -> list[str]:
    prefix = f"{MODULES_DIR}/{module_id}/"
    return [p for p in plan.file_paths if p.startswith(prefix)]


# ---------------------------------------------------------------------------
# Base scaffold
# ---------------------------------------------------------------------------


class TestBaseScaffold:
    def test_empty_feature_set(self, planner, make_config, output_dir):
        plan = planner.plan(make_config())

        assert plan.root_path == str(output_dir)
        for directory in BASE_DIRECTORIES:
            assert directory in plan.directories
        assert not any(d.startswith(f"{MODULES_DIR}/") for d in plan.directories)
        assert "cmd/server/main.go" in plan.file_paths
        assert plan.get_file("go.mod").content.startswith("module demo\n")
        assert 'data/demo.db' in plan.get_file("internal/core/providers.go").content
        assert [d.kind for d in plan.diagnostics] == [DiagnosticKind.EMPTY_REQUEST]

    def test_file_emission_order(self, planner, make_config):
        plan = planner.plan(make_config())
        assert plan.file_paths == [
            "cmd/server/main.go",
            "cmd/server/main_test.go",
            "go.mod",
            "README.md",
            "internal/core/providers.go",
            "internal/core/providers_test.go",
            "docker-compose.yml",
            "Dockerfile",
            "scripts/build.sh",
            "Makefile",
            "configs/app.yaml",
        ]

    def test_main_without_modules_still_uses_router(self, planner, make_config):
        main = planner.plan(make_config()).get_file("cmd/server/main.go").content
        assert "_ = apiRouter" in main
        assert '"demo/internal/core"' in main

    def test_template_ids_recorded(self, planner, make_config):
        plan = planner.plan(make_config())
        assert plan.get_file("cmd/server/main.go").template_id == "main.go.j2"
        assert plan.get_file("configs/app.yaml").template_id == "app.yaml.j2"

    @pytest.mark.parametrize(
        ("database", "needle"),
        [("postgres", "host=%s port=%s"), ("mysql", "tcp(%s:%s)")],
    )
    def test_server_databases(self, planner, make_config, database, needle):
        plan = planner.plan(make_config(database=database))
        providers = plan.get_file("internal/core/providers.go").content
        assert needle in providers
        assert "file::memory:?cache=shared" in providers
        compose = plan.get_file("docker-compose.yml").content
        assert f"  {database}:\n" in compose


# ---------------------------------------------------------------------------
# Module expansion
# ---------------------------------------------------------------------------


class TestModuleExpansion:
    def test_single_module(self, planner, make_config):
        plan = planner.plan(make_config(features=["auth"]))
        base = f"{MODULES_DIR}/auth"

        assert plan.configuration["install_order"] == ["auth"]
        for sub in ("", "/domain", "/repository", "/service", "/handlers", "/dto"):
            assert f"{base}{sub}" in plan.directories

        files = _module_files(plan, "auth")
        sources = [f for f in files if not f.endswith("_test.go")]
        tests = [f for f in files if f.endswith("_test.go")]
        assert sorted(sources) == sorted(
            [
                f"{base}/module.go",
                f"{base}/domain/auth.go",
                f"{base}/repository/auth_repository.go",
                f"{base}/service/auth_service.go",
                f"{base}/handlers/auth_handler.go",
            ]
        )
        assert len(tests) == 4

        main = plan.get_file("cmd/server/main.go").content
        assert f'\tauth "demo/{base}"' in main
        assert f'\tauthDomain "demo/{base}/domain"' in main
        assert f'\tauthHandlers "demo/{base}/handlers"' in main
        assert "authService authDomain.AuthService" in main
        assert "_ = apiRouter" not in main

    def test_module_annotations(self, planner, make_config):
        plan = planner.plan(make_config(features=["invoices"]))
        module_go = plan.get_file(f"{MODULES_DIR}/invoices/module.go").content
        assert module_go.startswith("// @modforge:module:invoices\n")
        assert "// @modforge:category:Business" in module_go
        assert "// @modforge:version:^2.0" in module_go
        assert "repository.NewInvoicesRepository" in module_go

    def test_transitive_modules_in_install_order(self, planner, make_config):
        plan = planner.plan(make_config(features=["invoices"]))
        assert plan.configuration["install_order"] == ["contacts", "invoices"]
        assert _module_files(plan, "contacts")
        assert _module_files(plan, "invoices")
        first_contacts = plan.file_paths.index(f"{MODULES_DIR}/contacts/module.go")
        first_invoices = plan.file_paths.index(f"{MODULES_DIR}/invoices/module.go")
        assert first_contacts < first_invoices
        assert plan.configuration["optional_modules"] == ["payments"]
        assert plan.configuration["module_versions"] == {"invoices": "^2.0"}

    def test_custom_module(self, planner, make_config):
        plan = planner.plan(make_config(features=["zeta"]))
        module_go = plan.get_file(f"{MODULES_DIR}/zeta/module.go").content
        assert "// @modforge:category:Custom" in module_go
        assert "@modforge:version" not in module_go
        assert DiagnosticKind.UNKNOWN_MODULE in [d.kind for d in plan.diagnostics]
        assert plan.configuration["custom_modules"] == ["zeta"]
        assert plan.summary()["Custom modules"] == "zeta"

    def test_builtin_invoice(self, builtin_planner, make_config):
        plan = builtin_planner.plan(make_config(features=["invoice"]))
        assert plan.configuration["install_order"] == [
            "user", "auth", "organization", "contact", "product", "invoice",
        ]
        main = plan.get_file("cmd/server/main.go").content
        positions = [main.index(f"\t\t{m}.Providers(),") for m in plan.configuration["install_order"]]
        assert positions == sorted(positions)

    def test_recommendations_follow_observability_flag(self, builtin_planner, make_config):
        plan = builtin_planner.plan(make_config(features=["invoice"]))
        messages = [d.message for d in plan.diagnostics if d.kind == DiagnosticKind.RECOMMENDATION]
        assert any("'audit'" in m for m in messages)
        assert any("observability" in m for m in messages)

        monitored = builtin_planner.plan(make_config(features=["invoice"], observability=True))
        messages = [d.message for d in monitored.diagnostics if d.kind == DiagnosticKind.RECOMMENDATION]
        assert not any("observability" in m for m in messages)


# ---------------------------------------------------------------------------
# Resolution failures
# ---------------------------------------------------------------------------


class TestResolutionFailures:
    def test_conflict(self, planner, make_config):
        with pytest.raises(ConflictDetectedError) as exc_info:
            planner.plan(make_config(features=["sqlite_only", "postgres_only"]))
        assert exc_info.value.conflicts == [("postgres_only", "sqlite_only")]
        assert exc_info.value.phase == "resolve"

    def test_cycle(self, planner, make_config):
        with pytest.raises(DependencyCycleError) as exc_info:
            planner.plan(make_config(features=["a"]))
        assert exc_info.value.cycles == [["a", "b"]]
        assert "[resolver > resolve]" in str(exc_info.value)

    def test_render_error_names_phase_and_module(self, tmp_path, small_catalog, make_config):
        source = TemplateRenderer().template_dir
        for template in source.glob("*.j2"):
            (tmp_path / template.name).write_text(template.read_text(encoding="utf-8"), encoding="utf-8")
        (tmp_path / "service.go.j2").write_text("{{ undefined_value }}\n", encoding="utf-8")

        planner = ProjectPlanner(small_catalog, TemplateRenderer(tmp_path))
        with pytest.raises(TemplateRenderError) as exc_info:
            planner.plan(make_config(features=["auth"]))
        assert exc_info.value.phase == "modules"
        assert exc_info.value.module == "auth"
        assert exc_info.value.template_id == "service.go.j2"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class TestVariants:
    @pytest.mark.parametrize(
        ("frontend", "paths", "dependency"),
        [
            (
                "react",
                ["frontend/package.json", "frontend/src/modules/registry.ts"],
                "github.com/gorilla/websocket v1.5.0",
            ),
            ("templ", ["web/templates/layout.templ"], "github.com/a-h/templ v0.2.543"),
            ("fyne", ["cmd/desktop/main.go"], "fyne.io/fyne/v2 v2.4.3"),
        ],
    )
    def test_frontends(self, planner, make_config, frontend, paths, dependency):
        plan = planner.plan(make_config(frontend=frontend, features=["auth"]))
        for path in paths:
            assert path in plan.file_paths
        assert dependency in plan.dependencies
        assert f"\t{dependency}\n" in plan.get_file("go.mod").content

    def test_react_registry_lists_modules(self, planner, make_config):
        plan = planner.plan(make_config(frontend="react", features=["invoices"]))
        registry = plan.get_file("frontend/src/modules/registry.ts").content
        assert '  "contacts",\n  "invoices",\n' in registry
        package = plan.get_file("frontend/package.json").content
        assert '"name": "demo-frontend"' in package

    def test_no_frontend_files(self, planner, make_config):
        plan = planner.plan(make_config())
        assert not any(p.startswith(("frontend/", "web/", "cmd/desktop")) for p in plan.file_paths)

    def test_enterprise_directories(self, planner, make_config):
        plan = planner.plan(make_config(enterprise=True))
        for directory in ENTERPRISE_DIRECTORIES:
            assert directory in plan.directories
        assert "enterprise:" in plan.get_file("configs/app.yaml").content

        plain = planner.plan(make_config())
        assert not set(ENTERPRISE_DIRECTORIES) & set(plain.directories)

    def test_observability_dependencies(self, planner, make_config):
        plan = planner.plan(make_config(observability=True))
        for dependency in OBSERVABILITY_DEPENDENCIES:
            assert dependency in plan.dependencies
        assert "observability:" in plan.get_file("configs/app.yaml").content

    def test_module_path_override(self, planner, make_config):
        config = make_config(
            features=["auth"], custom_values={"module_path": "github.com/acme/my-shop"}
        )
        plan = planner.plan(config)
        assert plan.get_file("go.mod").content.startswith("module github.com/acme/my-shop\n")
        assert plan.scripts["test"] == "MY_SHOP_TEST_MODE=1 go test ./..."


# ---------------------------------------------------------------------------
# Build metadata
# ---------------------------------------------------------------------------


class TestBuildMetadata:
    def test_scripts(self, planner, make_config):
        plan = planner.plan(make_config())
        assert plan.scripts == {
            "build": "go build -o bin/server ./cmd/server",
            "test": "DEMO_TEST_MODE=1 go test ./...",
            "run": "go run ./cmd/server",
        }

    def test_scripts_with_digit_leading_project(self, planner, make_config):
        plan = planner.plan(make_config(project_name="9shop"))
        assert plan.scripts["test"] == "APP_9SHOP_TEST_MODE=1 go test ./..."
        assert "APP_9SHOP_TEST_MODE=1 go test ./..." in plan.get_file("Makefile").content
        assert 'os.Getenv("APP_9SHOP_TEST_MODE")' in plan.get_file("cmd/server/main.go").content

    def test_build_script_is_executable(self, planner, make_config):
        plan = planner.plan(make_config())
        executables = [f.path for f in plan.files if f.executable]
        assert executables == ["scripts/build.sh"]

    def test_configuration_echo(self, planner, make_config):
        plan = planner.plan(make_config(features=["invoices", "auth"], database="postgres"))
        config = plan.configuration
        assert config["project_name"] == "demo"
        assert config["module_root"] == "demo"
        assert config["database"] == "postgres"
        assert config["features"] == ["invoices", "auth"]
        assert config["install_order"] == ["auth", "contacts", "invoices"]
        assert config["test_mode_env"] == "DEMO_TEST_MODE"

    def test_go_mod_dependencies(self, planner, make_config):
        plan = planner.plan(make_config(database="postgres"))
        go_mod = plan.get_file("go.mod").content
        assert plan.dependencies == sorted(plan.dependencies)
        for dependency in BASE_DEPENDENCIES:
            assert f"\t{dependency}\n" in go_mod
        assert "\tgorm.io/driver/postgres v1.5.4\n" in go_mod
        assert "\tgorm.io/driver/sqlite v1.5.4\n" in go_mod

    def test_compute_dependencies_deduplicates_sqlite(self):
        deps = compute_dependencies("sqlite", observability=False, frontend="none")
        assert deps.count("gorm.io/driver/sqlite v1.5.4") == 1
        assert len(deps) == len(BASE_DEPENDENCIES) + 1

    def test_database_service(self):
        postgres = database_service("postgres", "shop")
        assert postgres["service"] == "postgres"
        assert "POSTGRES_DB=shop" in postgres["env"]
        assert database_service("sqlite", "shop")["service"] == ""

    def test_dockerfile_builds_without_go_sum(self, planner, make_config):
        plan = planner.plan(make_config())
        assert "go.sum" not in plan.file_paths
        dockerfile = plan.get_file("Dockerfile").content
        copies = [line for line in dockerfile.splitlines() if line.startswith("COPY")]
        assert not any("go.sum" in line for line in copies)
        assert "apk add --no-cache build-base" in dockerfile
        assert dockerfile.index("build-base") < dockerfile.index("CGO_ENABLED=1")
        assert "go mod tidy" in dockerfile

    def test_sqlite_compose_has_no_database_service(self, planner, make_config):
        compose = planner.plan(make_config()).get_file("docker-compose.yml").content
        assert "SQLITE_PATH=/data/demo.db" in compose
        assert "depends_on" not in compose


# ---------------------------------------------------------------------------
# Plan invariants
# ---------------------------------------------------------------------------


@pytest.fixture(
    params=[
        {},
        {"features": ["auth"]},
        {"features": ["invoices", "auth"], "frontend": "react", "enterprise": True},
        {"features": ["zeta"], "frontend": "fyne", "observability": True, "database": "mysql"},
    ],
    ids=["empty", "auth", "react-enterprise", "custom-fyne"],
)
def varied_plan(request, planner, make_config):
    return planner.plan(make_config(**request.param))


class TestPlanInvariants:
    def test_paths_are_unique(self, varied_plan):
        assert len(varied_plan.file_paths) == len(set(varied_plan.file_paths))
        assert len(varied_plan.directories) == len(set(varied_plan.directories))

    def test_parents_are_listed_first(self, varied_plan):
        seen: set[str] = set()
        for directory in varied_plan.directories:
            if "/" in directory:
                assert directory.rsplit("/", 1)[0] in seen, directory
            seen.add(directory)
        for path in varied_plan.file_paths:
            if "/" in path:
                assert path.rsplit("/", 1)[0] in seen, path

    def test_paths_are_safe(self, varied_plan):
        for path in varied_plan.file_paths + varied_plan.directories:
            assert not path.startswith("/")
            assert ".." not in path.split("/")
            assert "\\" not in path

    def test_wiring_imports_start_with_module_root(self, planner, make_config):
        root = "example.com/acme/shop"
        plan = planner.plan(
            make_config(features=["invoices", "auth"], custom_values={"module_path": root})
        )
        wiring = [plan.get_file("cmd/server/main.go")] + [
            f for f in plan.files if f.path.endswith("/module.go")
        ]
        assert len(wiring) == 4
        for record in wiring:
            for path in _imports(record.content):
                first = path.split("/", 1)[0]
                if "." not in first or path.startswith(THIRD_PARTY_PREFIXES):
                    continue
                assert path.startswith(root + "/"), (record.path, path)

    def test_entry_file_import_names_are_unique(self, planner, make_config):
        plan = planner.plan(
            make_config(features=["router", "server", "lc", "handlers", "domain", "auth"])
        )
        block = _IMPORT_BLOCK_RE.search(plan.get_file("cmd/server/main.go").content)
        names = []
        for line in block.group(1).splitlines():
            parts = line.split()
            if not parts:
                continue
            names.append(parts[0] if len(parts) == 2 else parts[0].strip('"').rsplit("/", 1)[-1])
        assert len(names) == len(set(names)), names
        assert {"router", "routerDomain", "routerHandlers", "core", "fx"} <= set(names)

    @pytest.mark.parametrize("feature", ["core", "fx", "http", "2fa", "type"])
    def test_ids_that_break_go_code_are_rejected(self, feature):
        with pytest.raises(InvalidConfigError) as exc_info:
            GeneratorConfig.from_dict({"project_name": "demo", "features": [feature]})
        assert exc_info.value.component == "config"

    def test_manifest_is_deterministic(self, small_catalog, make_config):
        config = make_config(features=["invoices", "auth"], frontend="templ", observability=True)
        first = ProjectPlanner(small_catalog).plan(config)
        second = ProjectPlanner(small_catalog).plan(config)
        assert first.get_file("go.mod").content == second.get_file("go.mod").content
        assert first.model_dump() == second.model_dump()


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_cancel_before_start(self, planner, make_config, flag_signal):
        with pytest.raises(OperationCancelledError) as exc_info:
            planner.plan(make_config(), cancel=flag_signal(after=0))
        assert exc_info.value.phase == "resolve"

    def test_cancel_during_modules(self, planner, make_config, flag_signal):
        # resolve, scaffold, then the first module check
        with pytest.raises(OperationCancelledError) as exc_info:
            planner.plan(make_config(features=["invoices"]), cancel=flag_signal(after=2))
        assert exc_info.value.phase == "modules"
        assert exc_info.value.module == "contacts"

    def test_unset_signal(self, planner, make_config, flag_signal):
        plan = planner.plan(make_config(features=["auth"]), cancel=flag_signal(after=100))
        assert _module_files(plan, "auth")
