"""Frontend stub generation for the react, templ and fyne frontend kinds."""

from __future__ import annotations

from typing import Any

from .plan import ProjectPlan
from .templates import TemplateRenderer


class FrontendGenerator:
    """Adds the frontend stub files for ``context["frontend"]`` to a plan."""

    # Frontend kind -> (template name, output path) pairs
    _FILES: dict[str, tuple[tuple[str, str], ...]] = {
        "react": (
            ("frontend/package.json.j2", "frontend/package.json"),
            ("frontend/registry.ts.j2", "frontend/src/modules/registry.ts"),
        ),
        "templ": (
            ("frontend/layout.templ.j2", "web/templates/layout.templ"),
        ),
        "fyne": (
            ("frontend/desktop_main.go.j2", "cmd/desktop/main.go"),
        ),
    }

    # Extra go.mod requirements per frontend kind
    _DEPENDENCIES: dict[str, tuple[str, ...]] = {
        "react": ("github.com/gorilla/websocket v1.5.0",),
        "templ": ("github.com/a-h/templ v0.2.543",),
        "fyne": ("fyne.io/fyne/v2 v2.4.3",),
    }

    def __init__(self, renderer: TemplateRenderer) -> None:
        self.renderer = renderer

    @classmethod
    def dependencies(cls, frontend: str) -> tuple[str, ...]:
        return cls._DEPENDENCIES.get(frontend, ())

    def generate(self, plan: ProjectPlan, context: dict[str, Any]) -> list[str]:
        """Render the stubs for the configured frontend.

        Returns:
            The plan-relative paths that were added (empty for ``none``).
        """
        added: list[str] = []
        for template_name, output_path in self._FILES.get(context["frontend"], ()):
            plan.add_file(
                output_path,
                self.renderer.render(template_name, context),
                template_id=template_name,
            )
            added.append(output_path)
        return added
