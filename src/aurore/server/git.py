"""Git collaborator: branch, changed files, HEAD content, and diffs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, NamedTuple

from aurore.server.files import FileAccessError, resolve_workspace_path

logger = logging.getLogger(__name__)

ChangeStatus = Literal["modified", "added", "deleted", "renamed"]


class GitResult(NamedTuple):
    stdout: str
    stderr: str
    returncode: int


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: ChangeStatus

    def to_wire(self) -> dict[str, Any]:
        return {"path": self.path, "status": self.status}


@dataclass
class GitInfo:
    is_git_repo: bool
    branch: str | None = None
    changed_files: list[ChangedFile] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "isGitRepo": self.is_git_repo,
            "changedFiles": [f.to_wire() for f in self.changed_files],
        }
        if self.branch:
            info["branch"] = self.branch
        return info


async def run_git(working_directory: Path, *args: str) -> GitResult:
    """Run ``git *args`` in *working_directory*. A missing git binary is exit 127."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=working_directory,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.warning("git executable not found")
        return GitResult("", "git not found", 127)

    stdout, stderr = await proc.communicate()
    return GitResult(
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
        proc.returncode if proc.returncode is not None else -1,
    )


async def is_git_repo(working_directory: Path) -> bool:
    if (Path(working_directory) / ".git").exists():
        return True
    # Worktrees and subdirectories of a repo have no .git of their own.
    result = await run_git(working_directory, "rev-parse", "--git-dir")
    return result.returncode == 0


async def get_current_branch(working_directory: Path) -> str | None:
    result = await run_git(working_directory, "branch", "--show-current")
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def parse_status_line(line: str) -> ChangedFile | None:
    """Parse one ``git status --porcelain`` line (``XY path``)."""
    if len(line) < 4:
        return None

    xy = line[:2]
    path = line[3:]
    # Renames are reported as "old -> new".
    _, arrow, renamed_to = path.partition(" -> ")
    if arrow:
        path = renamed_to

    index, worktree = xy[0], xy[1]
    if xy == "??":
        return ChangedFile(path, "added")
    if "R" in xy:
        return ChangedFile(path, "renamed")
    if "D" in xy:
        return ChangedFile(path, "deleted")
    if index == "A":
        return ChangedFile(path, "added")
    if index != " " or worktree != " ":
        return ChangedFile(path, "modified")
    return None


async def get_changed_files(working_directory: Path) -> list[ChangedFile]:
    """Staged and unstaged changes. Empty when git fails."""
    result = await run_git(working_directory, "status", "--porcelain")
    if result.returncode != 0:
        return []
    changed = [parse_status_line(line) for line in result.stdout.split("\n") if line]
    return [c for c in changed if c is not None]


async def get_git_info(working_directory: Path) -> GitInfo:
    if not await is_git_repo(working_directory):
        return GitInfo(is_git_repo=False)

    branch, changed = await asyncio.gather(
        get_current_branch(working_directory),
        get_changed_files(working_directory),
    )
    return GitInfo(is_git_repo=True, branch=branch, changed_files=changed)


async def get_original_content(working_directory: Path, relative: str) -> str:
    """Content of *relative* at ``HEAD``; empty for files added since.

    Raises:
        FileAccessError: Invalid path or not a git repository.
    """
    root = Path(working_directory).resolve()
    target = resolve_workspace_path(root, relative)
    if not await is_git_repo(root):
        msg = "Not a git repository"
        raise FileAccessError(msg)

    revision = f"HEAD:{target.relative_to(root).as_posix()}"
    result = await run_git(root, "show", revision)
    if result.returncode != 0:
        logger.debug("no HEAD version of %s: %s", relative, result.stderr.strip())
        return ""
    return result.stdout


async def get_diff(working_directory: Path, relative: str | None = None) -> str:
    """Unified diff of staged changes followed by unstaged ones."""
    paths: tuple[str, ...] = ()
    if relative:
        root = Path(working_directory).resolve()
        target = resolve_workspace_path(root, relative)
        paths = ("--", target.relative_to(root).as_posix())

    staged, unstaged = await asyncio.gather(
        run_git(working_directory, "diff", "--cached", *paths),
        run_git(working_directory, "diff", *paths),
    )
    parts = [r.stdout for r in (staged, unstaged) if r.returncode == 0 and r.stdout]
    return "\n".join(parts)
