"""Filesystem operations on the shared workspace."""

from pathlib import Path
from typing import Any, Dict, List

import aiofiles

from .base import BaseTool, ToolResult, ToolResultStatus

MAX_FILE_SIZE = 1_000_000
MAX_LIST_ENTRIES = 500


class FileSystemTool(BaseTool):
    """Reads, writes, lists and searches files inside the workspace.

    Paths are relative to the workspace root. Absolute paths under the
    sandbox mount point (``/workspace/...``) name the same files, so the model
    can use whichever form the shell showed it.
    """

    def __init__(self, root: Path, mount_point: str = "/workspace"):
        super().__init__()
        self.name = "filesystem"
        self.root = Path(root).resolve()
        self.mount_point = mount_point.rstrip("/")

    @property
    def description(self) -> str:
        return "Read, write, list and search files in the workspace"

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "enum": ["read", "write", "list", "search"],
                    "description": "The filesystem operation to perform",
                },
                "path": {
                    "type": "string",
                    "description": "File or directory path, relative to the workspace",
                },
                "content": {
                    "type": "string",
                    "description": "Content for write operations",
                },
                "pattern": {
                    "type": "string",
                    "description": "Text to look for in search operations",
                },
            },
            "required": ["operation", "path"],
        }

    def resolve(self, path: str) -> Path:
        """Map a tool path onto the host, refusing anything outside the workspace."""
        raw = str(path or ".")
        if self.mount_point and (raw == self.mount_point or raw.startswith(self.mount_point + "/")):
            raw = raw[len(self.mount_point):].lstrip("/") or "."
        candidate = Path(raw)
        if candidate.is_absolute():
            raise ValueError(f"Path outside the workspace: {path}")
        resolved = (self.root / candidate).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise ValueError(f"Path outside the workspace: {path}")
        return resolved

    async def execute(self, **kwargs) -> ToolResult:
        """Execute filesystem operation."""
        operation = kwargs.get("operation")
        path = self.resolve(kwargs.get("path", "."))

        if operation == "read":
            return await self._read_file(path)
        elif operation == "write":
            return await self._write_file(path, str(kwargs.get("content", "")))
        elif operation == "list":
            return self._list_directory(path)
        elif operation == "search":
            return await self._search(path, str(kwargs.get("pattern", "")))
        else:
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=f"Unknown operation: {operation}",
            )

    def _relative(self, path: Path) -> str:
        return str(path.relative_to(self.root)) if path != self.root else "."

    async def _read_file(self, file_path: Path) -> ToolResult:
        if not file_path.is_file():
            return ToolResult(status=ToolResultStatus.ERROR, error=f"File not found: {self._relative(file_path)}")

        size = file_path.stat().st_size
        if size > MAX_FILE_SIZE:
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=f"File too large: {self._relative(file_path)} ({size} bytes)",
            )

        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                content = await f.read()
        except UnicodeDecodeError:
            return ToolResult(
                status=ToolResultStatus.ERROR,
                error=f"File appears to be binary: {self._relative(file_path)}",
            )

        return ToolResult(
            status=ToolResultStatus.SUCCESS,
            content=content,
            data={"path": self._relative(file_path), "size": size, "lines": len(content.splitlines())},
        )

    async def _write_file(self, file_path: Path, content: str) -> ToolResult:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
            await f.write(content)

        return ToolResult(
            status=ToolResultStatus.SUCCESS,
            content=f"Successfully wrote {len(content)} characters to {self._relative(file_path)}",
            data={"path": self._relative(file_path), "size": len(content)},
        )

    def _list_directory(self, dir_path: Path) -> ToolResult:
        if not dir_path.is_dir():
            return ToolResult(status=ToolResultStatus.ERROR, error=f"Not a directory: {self._relative(dir_path)}")

        entries: List[str] = []
        for child in sorted(dir_path.iterdir(), key=lambda p: (not p.is_dir(), p.name)):
            entries.append(child.name + "/" if child.is_dir() else child.name)
            if len(entries) >= MAX_LIST_ENTRIES:
                entries.append("...")
                break

        return ToolResult(
            status=ToolResultStatus.SUCCESS,
            content="\n".join(entries) or "(empty directory)",
            data={"path": self._relative(dir_path), "count": len(entries)},
        )

    async def _search(self, search_path: Path, pattern: str) -> ToolResult:
        if not pattern:
            return ToolResult(status=ToolResultStatus.ERROR, error="Pattern is required for search")

        files = [search_path] if search_path.is_file() else sorted(p for p in search_path.rglob("*") if p.is_file())
        matches: List[str] = []
        needle = pattern.lower()
        for file_path in files:
            if file_path.stat().st_size > MAX_FILE_SIZE:
                continue
            try:
                async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                    content = await f.read()
            except (UnicodeDecodeError, OSError):
                continue
            for number, line in enumerate(content.splitlines(), 1):
                if needle in line.lower():
                    matches.append(f"{self._relative(file_path)}:{number}: {line.strip()}")

        return ToolResult(
            status=ToolResultStatus.SUCCESS,
            content="\n".join(matches) or f"No matches for '{pattern}'",
            data={"matches": len(matches)},
        )
