"""Generator configuration.

A validated profile describing the project to scaffold.  All settings use
Pydantic v2 models so they are validated at construction time and can be
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from modforge.catalog import check_module_id, is_module_id
from modforge.errors import InvalidConfigError


Frontend = Literal["react", "templ", "fyne", "none"]
Database = Literal["sqlite", "postgres", "mysql"]
AuthMode = Literal["jwt", "oauth", "both"]

_MODULE_PATH_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._~-]+$")


class GeneratorConfig(BaseModel):
    """Profile for one scaffolding run.

    ``custom_values`` carries free-form template overrides.  The key
    ``module_path`` replaces the project name as the import-path root (e.g.
    ``github.com/acme/shop``).
    """

    project_name: str = Field(..., description="Project name; also the default import root")
    output_path: Path = Field(default=Path("."), description="Directory the project is written to")
    frontend: Frontend = Field(default="none", description="Frontend kind")
    database: Database = Field(default="sqlite", description="Relational driver")
    auth: AuthMode = Field(default="jwt", description="Authentication mode")
    features: list[str] = Field(default_factory=list, description="Requested module ids")
    enterprise: bool = Field(default=False, description="Add the enterprise directory overlay")
    observability: bool = Field(default=False, description="Add metrics and tracing libraries")
    custom_values: dict[str, str] = Field(
        default_factory=dict, description="Free-form template overrides"
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("project_name")
    @classmethod
    def _check_project_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("project_name must not be empty")
        if not is_module_id(value):
            raise ValueError(
                f"project_name {value!r} may only contain lowercase letters, digits and underscores"
            )
        return value

    @field_validator("features")
    @classmethod
    def _check_features(cls, value: list[str]) -> list[str]:
        result: list[str] = []
        for raw in value:
            feature = raw.strip()
            try:
                check_module_id(feature)
            except ValueError as exc:
                raise ValueError(f"features: {exc}") from exc
            if feature not in result:
                result.append(feature)
        return result

    @field_validator("custom_values")
    @classmethod
    def _check_custom_values(cls, value: dict[str, str]) -> dict[str, str]:
        module_path = value.get("module_path", "").strip()
        if module_path:
            if module_path.startswith("/"):
                raise ValueError("module_path must not start with '/'")
            for segment in module_path.split("/"):
                if segment in ("", ".", "..") or not _MODULE_PATH_SEGMENT_RE.fullmatch(segment):
                    raise ValueError(f"invalid module_path segment {segment!r} in {module_path!r}")
        return value

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratorConfig":
        """Validate *data*, raising :class:`InvalidConfigError` on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigError(_format_validation_error(exc)) from exc

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "GeneratorConfig":
        """Load a previously-saved configuration from JSON.

        Raises:
            InvalidConfigError: If the file is unreadable, not JSON, or fails
                validation.
        """
        file_path = Path(path)
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidConfigError(f"Cannot read configuration: {exc}", path=file_path) from exc
        if not isinstance(raw, dict):
            raise InvalidConfigError("Configuration file must contain a JSON object", path=file_path)
        return cls.from_dict(raw)

    @classmethod
    def from_env(cls) -> "GeneratorConfig":
        """Build a ``GeneratorConfig`` from environment variables.

        Recognised variables:
            MODFORGE_PROJECT_NAME (required), MODFORGE_OUTPUT_DIR,
            MODFORGE_FEATURES (comma separated), MODFORGE_DATABASE,
            MODFORGE_FRONTEND, MODFORGE_AUTH, MODFORGE_ENTERPRISE,
            MODFORGE_OBSERVABILITY, MODFORGE_MODULE_PATH.
        """
        data: dict[str, Any] = {
            "project_name": os.environ.get("MODFORGE_PROJECT_NAME", ""),
            "output_path": os.environ.get("MODFORGE_OUTPUT_DIR", "."),
        }
        features = os.environ.get("MODFORGE_FEATURES", "")
        data["features"] = [f.strip() for f in features.split(",") if f.strip()]
        for key in ("database", "frontend", "auth"):
            value = os.environ.get(f"MODFORGE_{key.upper()}")
            if value:
                data[key] = value.strip().lower()
        for key in ("enterprise", "observability"):
            value = os.environ.get(f"MODFORGE_{key.upper()}")
            if value:
                data[key] = value.strip().lower() in ("1", "true", "yes", "on")
        if os.environ.get("MODFORGE_MODULE_PATH"):
            data["custom_values"] = {"module_path": os.environ["MODFORGE_MODULE_PATH"]}
        return cls.from_dict(data)


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "config"
        problems.append(f"{location}: {error['msg']}")
    return "Invalid configuration: " + "; ".join(problems)
