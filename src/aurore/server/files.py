"""Workspace file collaborators: directory tree and file preview."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

#: Names always hidden from the tree, in addition to .gitignore patterns.
DEFAULT_IGNORE = (
    "node_modules",
    ".git",
    "dist",
    ".next",
    ".cache",
    "coverage",
    "__pycache__",
    ".DS_Store",
    "Thumbs.db",
)

#: Directories deeper than this are listed without children.
MAX_TREE_DEPTH = 10

#: Bytes inspected for a NUL when deciding whether a file is binary.
BINARY_SNIFF_LEN = 8192


class FileAccessError(Exception):
    """A requested workspace path cannot be previewed."""


@dataclass
class FileNode:
    name: str
    path: str
    is_directory: bool
    children: list[FileNode] | None = field(default=None)

    def to_wire(self) -> dict[str, Any]:
        node: dict[str, Any] = {
            "id": self.path,
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
        }
        if self.children is not None:
            node["children"] = [child.to_wire() for child in self.children]
        return node


def load_ignore_patterns(working_directory: Path) -> list[str]:
    """Default ignores plus the non-comment lines of ``.gitignore``."""
    patterns = list(DEFAULT_IGNORE)
    gitignore = working_directory / ".gitignore"
    if gitignore.is_file():
        for line in gitignore.read_text(encoding="utf-8", errors="replace").splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("#"):
                patterns.append(stripped.removeprefix("/"))
    return patterns


def should_ignore(name: str, patterns: list[str]) -> bool:
    """Match *name* against exact, ``dir/``, and ``*.ext`` patterns."""
    for pattern in patterns:
        if pattern == name:
            return True
        if pattern.endswith("/") and pattern[:-1] == name:
            return True
        if pattern.startswith("*.") and name.endswith(pattern[1:]):
            return True
    return False


def get_file_tree(working_directory: Path) -> list[FileNode]:
    """Build the workspace tree: directories first, then names case-insensitively."""
    root = Path(working_directory)
    return _build_tree(root, root, load_ignore_patterns(root), depth=0)


def _build_tree(directory: Path, root: Path, patterns: list[str], depth: int) -> list[FileNode]:
    if depth >= MAX_TREE_DEPTH:
        return []
    try:
        entries = list(directory.iterdir())
    except OSError:
        return []

    nodes: list[FileNode] = []
    for entry in entries:
        if should_ignore(entry.name, patterns):
            continue
        is_dir = entry.is_dir()
        nodes.append(
            FileNode(
                name=entry.name,
                path=entry.relative_to(root).as_posix(),
                is_directory=is_dir,
                children=_build_tree(entry, root, patterns, depth + 1) if is_dir else None,
            )
        )

    nodes.sort(key=lambda n: (not n.is_directory, n.name.lower()))
    return nodes


def resolve_workspace_path(working_directory: Path, relative: str) -> Path:
    """Resolve *relative* inside the workspace.

    Raises:
        FileAccessError: The path escapes the workspace.
    """
    root = Path(working_directory).resolve()
    resolved = (root / relative).resolve()
    if not resolved.is_relative_to(root):
        msg = "Invalid path"
        raise FileAccessError(msg)
    return resolved


def is_binary(data: bytes) -> bool:
    return b"\x00" in data[:BINARY_SNIFF_LEN]


def get_file_content(working_directory: Path, relative: str) -> str:
    """Return the UTF-8 text of a workspace file.

    Raises:
        FileAccessError: Invalid path, missing file, directory, or binary file.
    """
    path = resolve_workspace_path(working_directory, relative)
    if not path.exists():
        msg = "File not found"
        raise FileAccessError(msg)
    if path.is_dir():
        msg = "Path is a directory"
        raise FileAccessError(msg)

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FileAccessError(str(exc)) from exc
    if is_binary(data):
        msg = "Preview not supported for binary files"
        raise FileAccessError(msg)
    return data.decode("utf-8", errors="replace")


def count_lines(content: str) -> int:
    return content.count("\n") + 1
