"""Jinja2 template rendering for project scaffolding.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``modforge/scaffolder/templates/`` directory and renders them with project and
module context.  Rendering is pure: the renderer never touches the target
filesystem, it only returns text for the planner to place in a file record.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from modforge.errors import TemplateRenderError


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders Jinja2 templates for project scaffolding.

    The renderer discovers ``.j2`` template files under a configurable
    template directory.  Undefined variables are errors, so a template that
    references a parameter the planner did not supply fails loudly instead of
    emitting broken source.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([], default_for_string=False),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["go_quote"] = _go_quote_filter
        self.env.filters["one_line"] = _one_line_filter

    # -- Single template rendering -----------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"main.go.j2"``).
            context: Dictionary of variables available inside the template.

        Returns:
            The rendered template content as a string.

        Raises:
            TemplateRenderError: If the template is missing, malformed, or
                references a variable absent from *context*.
        """
        try:
            template = self.env.get_template(template_path)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(template_path, str(exc) or type(exc).__name__) from exc

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context.

        Useful for rendering small template fragments that are not stored as
        files (e.g. dynamically constructed content).
        """
        try:
            template = self.env.from_string(template_string)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError("<string>", str(exc) or type(exc).__name__) from exc

    # -- Utility -----------------------------------------------------------

    def list_templates(self, prefix: str = "") -> list[str]:
        """Return a sorted list of all ``.j2`` template paths under *prefix*.

        Paths are relative to the template root directory and always use
        forward slashes.
        """
        search_dir = self.template_dir / prefix if prefix else self.template_dir
        if not search_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in search_dir.rglob("*.j2")
        )


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def _go_quote_filter(value: Any) -> str:
    """Render *value* as a double-quoted Go string literal."""
    return json.dumps(str(value), ensure_ascii=False)


def _one_line_filter(value: Any) -> str:
    """Collapse whitespace so free text is safe inside a ``//`` comment."""
    return re.sub(r"\s+", " ", str(value)).strip()
