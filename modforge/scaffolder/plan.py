"""In-memory description of the tree the planner intends to write.

The :class:`ProjectPlan` is the only hand-off between the planner and the
filesystem writer.  It enforces the structural invariants as records are
added: paths are relative with forward slashes and never escape the root,
no two files share a path, and every file's parent directory is listed
before it (ancestors are registered automatically).
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from modforge.diagnostics import Diagnostic
from modforge.errors import ModforgeError, PathEscapeError


def ensure_safe_path(path: str) -> str:
    """Validate a plan-relative path and return it unchanged.

    Raises:
        PathEscapeError: If *path* is empty, absolute, uses backslashes,
            contains a NUL byte, or has an empty, ``.`` or ``..`` segment.
    """
    if not path:
        raise PathEscapeError("Empty path in project plan")
    if "\x00" in path:
        raise PathEscapeError("Path contains a NUL byte", path=path.replace("\x00", "\\0"))
    if "\\" in path:
        raise PathEscapeError("Path must use forward slashes", path=path)
    if path.startswith("/") or (len(path) > 1 and path[1] == ":"):
        raise PathEscapeError("Path must be relative to the project root", path=path)
    for segment in path.split("/"):
        if segment in ("", ".", ".."):
            raise PathEscapeError(f"Invalid path segment {segment!r}", path=path)
    return path


class FileRecord(BaseModel):
    """One file the writer should create."""
    path: str = Field(..., description="Path relative to the project root")
    content: str = Field(default="", description="UTF-8 text content")
    template_id: Optional[str] = Field(default=None, description="Template used, for traceability")
    executable: bool = Field(default=False, description="chmod 0755 after writing")
    overwrite: bool = Field(default=False, description="Replace an existing file on disk")


class ProjectPlan(BaseModel):
    """Directories, files and build metadata for one generated project."""
    root_path: str = Field(..., description="Filesystem root the plan is written under")
    directories: list[str] = Field(default_factory=list, description="Parents before children")
    files: list[FileRecord] = Field(default_factory=list, description="In emission order")
    dependencies: list[str] = Field(default_factory=list, description="Pinned go.mod requirements")
    scripts: dict[str, str] = Field(default_factory=dict, description="Named shell commands")
    configuration: dict[str, Any] = Field(default_factory=dict, description="Echoed build metadata")
    diagnostics: list[Diagnostic] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # Mutation helpers used by the planner
    # ------------------------------------------------------------------

    def add_directory(self, path: str) -> None:
        """Register *path* and any missing ancestors, parents first."""
        ensure_safe_path(path)
        parts = path.split("/")
        for depth in range(1, len(parts) + 1):
            candidate = "/".join(parts[:depth])
            if candidate not in self.directories:
                self.directories.append(candidate)

    def add_file(
        self,
        path: str,
        content: str,
        *,
        template_id: Optional[str] = None,
        executable: bool = False,
        overwrite: bool = False,
    ) -> FileRecord:
        """Append a file record, registering its parent directory.

        Raises:
            PathEscapeError: If *path* is unsafe.
            ModforgeError: If a record with the same path already exists.
        """
        ensure_safe_path(path)
        if self.get_file(path) is not None:
            raise ModforgeError("Duplicate file in project plan", path=path)
        parent = path.rsplit("/", 1)[0] if "/" in path else ""
        if parent:
            self.add_directory(parent)
        record = FileRecord(
            path=path,
            content=content,
            template_id=template_id,
            executable=executable,
            overwrite=overwrite,
        )
        self.files.append(record)
        return record

    def get_file(self, path: str) -> Optional[FileRecord]:
        for record in self.files:
            if record.path == path:
                return record
        return None

    def replace_content(self, path: str, content: str) -> FileRecord:
        """Swap the content of an existing record, keeping its position."""
        record = self.get_file(path)
        if record is None:
            raise ModforgeError("No such file in project plan", path=path)
        record.content = content
        return record

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def file_paths(self) -> list[str]:
        return [record.path for record in self.files]

    def summary(self) -> dict[str, str]:
        """Key/value overview suitable for a summary table."""
        return {
            "Root": self.root_path,
            "Directories": str(len(self.directories)),
            "Files": str(len(self.files)),
            "Executable files": str(sum(1 for f in self.files if f.executable)),
            "Dependencies": str(len(self.dependencies)),
            "Modules": ", ".join(self.configuration.get("install_order", [])) or "(none)",
            "Custom modules": ", ".join(self.configuration.get("custom_modules", [])) or "(none)",
        }
