"""Materializes a :class:`~modforge.scaffolder.plan.ProjectPlan` on disk.

Blocking filesystem calls run in worker threads via ``asyncio.to_thread``.
Each file is written to a temporary sibling and moved into place with
``os.replace``, so a reader never observes a half-written file.  There is no
rollback: an error aborts the remaining writes and leaves what was already
written in place.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from rich.console import Console

from modforge.diagnostics import CancelSignal, Diagnostic, DiagnosticKind
from modforge.errors import FilesystemError, OperationCancelledError, PathEscapeError

from .plan import FileRecord, ProjectPlan, ensure_safe_path


DIRECTORY_MODE = 0o755
FILE_MODE = 0o644
EXECUTABLE_MODE = 0o755


class WriteReport(BaseModel):
    """What the writer did with a plan."""
    root: str = Field(..., description="Resolved project root")
    directories_created: list[str] = Field(default_factory=list)
    files_written: list[str] = Field(default_factory=list)
    files_skipped: list[str] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class FilesystemWriter:
    """Writes plan directories and files under ``plan.root_path``.

    Args:
        console: Optional Rich console; when given, every created file is
            echoed to it.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console

    async def write(
        self,
        plan: ProjectPlan,
        cancel: Optional[CancelSignal] = None,
    ) -> WriteReport:
        """Create every directory, then every file, in plan order.

        Raises:
            PathEscapeError: If a path is unsafe or resolves outside the root.
            FilesystemError: If a mkdir, write or chmod call fails.
            OperationCancelledError: If *cancel* is set between writes.
        """
        root = Path(plan.root_path)
        try:
            await asyncio.to_thread(root.mkdir, mode=DIRECTORY_MODE, parents=True, exist_ok=True)
            resolved_root = await asyncio.to_thread(root.resolve)
        except OSError as exc:
            raise FilesystemError("Cannot create project root", cause=exc, path=root) from exc

        report = WriteReport(root=str(resolved_root))

        for directory in plan.directories:
            _check_cancel(cancel, directory)
            target = _contained(resolved_root, directory)
            try:
                created = await asyncio.to_thread(_make_directory, target)
            except OSError as exc:
                raise FilesystemError("Cannot create directory", cause=exc, path=directory) from exc
            if created:
                report.directories_created.append(directory)

        for record in plan.files:
            _check_cancel(cancel, record.path)
            target = _contained(resolved_root, record.path)
            if not record.overwrite and await asyncio.to_thread(target.exists):
                report.files_skipped.append(record.path)
                report.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.FILE_EXISTS_SKIPPED,
                        message=f"{record.path} already exists; left unchanged",
                        path=record.path,
                    )
                )
                if self.console is not None:
                    self.console.print(f"  [yellow]skipped[/yellow] {record.path}")
                continue
            try:
                await asyncio.to_thread(_write_atomic, target, record)
            except OSError as exc:
                raise FilesystemError("Cannot write file", cause=exc, path=record.path) from exc
            report.files_written.append(record.path)
            if self.console is not None:
                self.console.print(f"  [green]wrote[/green] {record.path}")

        return report


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _contained(root: Path, relative: str) -> Path:
    """Return ``root / relative`` after checking it cannot leave *root*.

    Symlinks already on disk are followed, so a link pointing outside the
    root is rejected too.
    """
    ensure_safe_path(relative)
    target = root / relative
    if not target.resolve().is_relative_to(root):
        raise PathEscapeError("Path resolves outside the project root", path=relative)
    return target


def _make_directory(path: Path) -> bool:
    """Create *path* with mode 0755; return ``False`` if it already existed."""
    if path.is_dir():
        return False
    path.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    os.chmod(path, DIRECTORY_MODE)
    return True


def _write_atomic(target: Path, record: FileRecord) -> None:
    target.parent.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(record.content)
        os.chmod(tmp_name, EXECUTABLE_MODE if record.executable else FILE_MODE)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _check_cancel(cancel: Optional[CancelSignal], path: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Write cancelled", phase="write", path=path)
