"""modforge scaffolding pipeline and command-line entry point.

Implements the three-step scaffolding run:

Step 1: PREFLIGHT -- scan template overlays for competing annotations.
Step 2: PLAN      -- resolve modules and build the in-memory project plan.
Step 3: WRITE     -- materialize the plan under the output directory.

Usage::

    python -m modforge --name shop --features invoice,payment --output ./shop
    python -m modforge --config shop.json --dry-run --plan-json plan.json
"""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from rich.markup import escape

from modforge.catalog import StaticCatalog, default_catalog, fetch_catalog, load_catalog
from modforge.config import GeneratorConfig
from modforge.diagnostics import CancelSignal
from modforge.errors import FilesystemError, InvalidConfigError, ModforgeError
from modforge.scaffolder import FilesystemWriter, ProjectPlanner
from modforge.scanner import by_priority, scan_annotations
from modforge.utils import (
    console,
    format_duration,
    print_annotations,
    print_diagnostics,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
)


# ---------------------------------------------------------------------------
# Catalog selection
# ---------------------------------------------------------------------------


async def open_catalog(source: Optional[str] = None) -> StaticCatalog:
    """Return the catalog named by *source*.

    ``None`` selects the built-in catalog, an ``http(s)://`` URL is fetched
    with httpx, anything else is read as a local YAML/JSON manifest.
    """
    if not source:
        return default_catalog()
    if source.startswith(("http://", "https://")):
        return await fetch_catalog(source)
    return await asyncio.to_thread(load_catalog, source)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class ScaffoldPipeline:
    """Runs preflight, planning and writing for one configuration.

    Attributes:
        config: Validated generator configuration.
        planner: Project planner bound to the selected catalog.
        overlays: Optional template corpus root to scan before planning.
        dry_run: Stop after planning; write nothing.
        plan_json: Optional path the plan is saved to as JSON.
    """

    def __init__(
        self,
        config: GeneratorConfig,
        catalog: StaticCatalog,
        *,
        overlays: Optional[Path] = None,
        dry_run: bool = False,
        plan_json: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.planner = ProjectPlanner(catalog)
        self.overlays = overlays
        self.dry_run = dry_run
        self.plan_json = plan_json

    async def run(self, cancel: Optional[CancelSignal] = None) -> dict[str, Any]:
        """Execute every step and return a result summary.

        Raises:
            ModforgeError: Any resolver, planner, writer or scanner failure,
                annotated with its component, phase and module.
        """
        start = time.monotonic()
        result: dict[str, Any] = {
            "success": False,
            "annotations": 0,
            "overlay_order": [],
            "files_planned": 0,
            "files_written": [],
            "files_skipped": [],
        }

        # -- Step 1: preflight ---------------------------------------------
        print_step_header(1, "preflight")
        if self.overlays is not None:
            annotations = await asyncio.to_thread(scan_annotations, self.overlays)
            ordered = by_priority(annotations)
            result["annotations"] = len(annotations)
            result["overlay_order"] = [a.construct_id for a in ordered]
            print_annotations(ordered)
            print_success(f"{len(annotations)} overlay annotation(s), no duplicate claims")
        else:
            console.print("[dim]No overlay directory given; skipping annotation scan[/dim]")

        # -- Step 2: plan --------------------------------------------------
        print_step_header(2, "plan")
        plan = self.planner.plan(self.config, cancel)
        result["files_planned"] = len(plan.files)
        result["install_order"] = list(plan.configuration.get("install_order", []))
        print_diagnostics(plan.diagnostics, title="Resolver diagnostics")
        print_summary_table(plan.summary(), title="Project plan")

        if self.plan_json is not None:
            try:
                await save_json(plan.model_dump(mode="json"), self.plan_json)
            except OSError as exc:
                raise FilesystemError("Cannot save plan", cause=exc, path=self.plan_json) from exc
            print_success(f"Plan saved to {self.plan_json}")

        if self.dry_run:
            print_warning("Dry run: nothing written")
            result["success"] = True
            result["elapsed"] = format_duration(time.monotonic() - start)
            return result

        # -- Step 3: write -------------------------------------------------
        print_step_header(3, "write")
        report = await FilesystemWriter(console=console).write(plan, cancel)
        result["files_written"] = report.files_written
        result["files_skipped"] = report.files_skipped
        print_diagnostics(report.diagnostics, title="Writer diagnostics")

        result["success"] = True
        result["elapsed"] = format_duration(time.monotonic() - start)
        print_summary_table(
            {
                "Root": report.root,
                "Directories created": str(len(report.directories_created)),
                "Files written": str(len(report.files_written)),
                "Files skipped": str(len(report.files_skipped)),
                "Elapsed": result["elapsed"],
            },
            title="Write report",
        )
        return result


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------


def _parse_custom_values(pairs: list[str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise InvalidConfigError(f"--set expects key=value, got {pair!r}")
        values[key.strip()] = value.strip()
    return values


def build_config(args: Any) -> GeneratorConfig:
    """Merge a config file (or ``MODFORGE_*`` variables) with CLI overrides.

    Command-line flags win over file values; the environment is only
    consulted when neither ``--config`` nor ``--name`` is given.
    """
    data: dict[str, Any] = {}
    if args.config:
        data = GeneratorConfig.load(Path(args.config)).model_dump()
    elif not args.name and os.environ.get("MODFORGE_PROJECT_NAME"):
        data = GeneratorConfig.from_env().model_dump()

    if args.name:
        data["project_name"] = args.name
    if args.output:
        data["output_path"] = args.output
    if args.features is not None:
        data["features"] = [f.strip() for f in args.features.split(",") if f.strip()]
    for key in ("database", "frontend", "auth"):
        value = getattr(args, key)
        if value:
            data[key] = value
    if args.enterprise:
        data["enterprise"] = True
    if args.observability:
        data["observability"] = True
    if args.set:
        data["custom_values"] = {**data.get("custom_values", {}), **_parse_custom_values(args.set)}

    if "project_name" not in data:
        raise InvalidConfigError("A project name is required (--name, --config or MODFORGE_PROJECT_NAME)")
    return GeneratorConfig.from_dict(data)


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``python -m modforge``."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="modforge",
        description="modforge -- scaffold a modular Go backend from a module catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  modforge --name shop --features invoice,payment -o ./shop\n"
            "  modforge --config shop.json --dry-run --plan-json plan.json\n"
            "  modforge --name shop --catalog https://example.com/catalog.yaml\n"
        ),
    )

    parser.add_argument("--config", "-c", default=None, help="JSON configuration file")
    parser.add_argument("--name", "-n", default=None, help="Project name ([a-z0-9_]+)")
    parser.add_argument("--output", "-o", default=None, help="Output directory (default: .)")
    parser.add_argument("--features", "-f", default=None, help="Comma-separated module ids")
    parser.add_argument("--database", choices=["sqlite", "postgres", "mysql"], default=None)
    parser.add_argument("--frontend", choices=["react", "templ", "fyne", "none"], default=None)
    parser.add_argument("--auth", choices=["jwt", "oauth", "both"], default=None)
    parser.add_argument("--enterprise", action="store_true", help="Add the enterprise overlay")
    parser.add_argument("--observability", action="store_true", help="Add metrics and tracing")
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Custom template value, e.g. module_path=github.com/acme/shop (repeatable)",
    )
    parser.add_argument("--catalog", default=None, help="Catalog manifest path or http(s) URL")
    parser.add_argument("--overlays", default=None, help="Template corpus root to scan first")
    parser.add_argument("--dry-run", action="store_true", help="Plan only; write nothing")
    parser.add_argument("--plan-json", default=None, help="Save the project plan as JSON")

    args = parser.parse_args(argv)

    async def _run() -> dict[str, Any]:
        config = build_config(args)
        catalog = await open_catalog(args.catalog)
        pipeline = ScaffoldPipeline(
            config,
            catalog,
            overlays=Path(args.overlays) if args.overlays else None,
            dry_run=args.dry_run,
            plan_json=Path(args.plan_json) if args.plan_json else None,
        )
        return await pipeline.run()

    try:
        result = asyncio.run(_run())
    except ModforgeError as exc:
        print_error(f"Error: {escape(str(exc))}")
        sys.exit(1)
    except KeyboardInterrupt:
        print_error("Interrupted")
        sys.exit(1)

    if result.get("success"):
        print_success("Scaffolding completed successfully!")
    else:
        print_error("Scaffolding failed.")
        sys.exit(1)


if __name__ == "__main__":
    main()
