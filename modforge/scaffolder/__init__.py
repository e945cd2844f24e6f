"""modforge scaffolder -- plans and writes modular Go backend projects.

The planner turns a ``GeneratorConfig`` into an in-memory ``ProjectPlan``
(directories, rendered files, build metadata) without touching the disk; the
writer then materializes that plan under its root directory.

Quick usage::

    from modforge.catalog import default_catalog
    from modforge.config import GeneratorConfig
    from modforge.scaffolder import FilesystemWriter, ProjectPlanner

    config = GeneratorConfig(
        project_name="shop",
        output_path="/tmp/shop",
        features=["invoice"],
    )
    plan = ProjectPlanner(default_catalog()).plan(config)
    report = await FilesystemWriter().write(plan)
"""

from modforge.scaffolder.generator import ProjectPlanner
from modforge.scaffolder.plan import FileRecord, ProjectPlan
from modforge.scaffolder.templates import TemplateRenderer
from modforge.scaffolder.writer import FilesystemWriter, WriteReport

__all__ = [
    "FileRecord",
    "FilesystemWriter",
    "ProjectPlan",
    "ProjectPlanner",
    "TemplateRenderer",
    "WriteReport",
]
