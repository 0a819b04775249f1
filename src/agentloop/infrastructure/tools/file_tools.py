# ============================================
# FILE SYSTEM TOOLS
# ============================================

from pathlib import Path
from typing import Any

import aiofiles

from agentloop.core.domain.config import SideEffect
from agentloop.infrastructure.tools.tool import Tool


class _WorkspaceFileTool(Tool):
    def __init__(self, working_directory: Path | None = None):
        super().__init__()
        self.working_directory = Path(working_directory or Path.cwd())

    def _resolve(self, path: str) -> Path:
        file_path = Path(path).expanduser()
        if not file_path.is_absolute():
            file_path = self.working_directory / file_path
        return file_path


class FileReadTool(_WorkspaceFileTool):
    """Safe file reading with size limits"""

    side_effect = SideEffect.READ

    @property
    def name(self) -> str:
        return "file_read"

    @property
    def description(self) -> str:
        return "Read file contents safely with size limits"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File to read, relative to the working directory",
                },
                "encoding": {"type": "string", "description": "Text encoding (default utf-8)"},
                "max_size_mb": {
                    "type": "number",
                    "description": "Refuse files larger than this (default 10)",
                },
            },
            "required": ["path"],
        }

    async def execute(
        self, path: str, encoding: str = "utf-8", max_size_mb: float = 10, **kwargs: Any
    ) -> dict[str, Any]:
        """
        Read file contents safely with size limits

        Args:
            path: The path to the file to read
            encoding: The encoding of the file
            max_size_mb: The maximum size of the file in MB

        Returns:
            A dictionary with the following keys:
            - success: True if the file was read successfully, False otherwise
            - output: The contents of the file
            - error: The error message if the file could not be read
        """
        file_path = self._resolve(path)
        if not file_path.is_file():
            return {"success": False, "error": f"File not found: {path}"}

        file_size_mb = file_path.stat().st_size / (1024 * 1024)
        if file_size_mb > max_size_mb:
            return {"success": False, "error": f"File too large: {file_size_mb:.2f}MB > {max_size_mb}MB"}

        try:
            async with aiofiles.open(file_path, "r", encoding=encoding) as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError, LookupError) as e:
            return {"success": False, "error": f"Cannot read {path}: {e}"}

        return {"success": True, "output": content}


class FileWriteTool(_WorkspaceFileTool):
    """Safe file writing with backup option"""

    side_effect = SideEffect.WRITE
    requires_approval = True

    @property
    def name(self) -> str:
        return "file_write"

    @property
    def description(self) -> str:
        return "Write content to a file, creating parent directories and an optional backup"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File to write, relative to the working directory",
                },
                "content": {"type": "string", "description": "Full new file content"},
                "backup": {
                    "type": "boolean",
                    "description": "Keep the previous version as <file>.bak (default true)",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str, backup: bool = True, **kwargs: Any) -> dict[str, Any]:
        """
        Write content to file with backup and safety checks

        Args:
            path: The path to the file to write
            content: The content to write to the file
            backup: Whether to backup the existing file

        Returns:
            A dictionary with the following keys:
            - success: True if the file was written successfully, False otherwise
            - path: The path to the file
            - size: The size of the content in characters
            - backed_up: Whether the existing file was backed up
            - error: The error message if the file was not written successfully
        """
        file_path = self._resolve(path)
        backed_up = False
        try:
            if backup and file_path.is_file():
                backup_path = file_path.with_suffix(file_path.suffix + ".bak")
                async with aiofiles.open(file_path, "rb") as src:
                    previous = await src.read()
                async with aiofiles.open(backup_path, "wb") as dst:
                    await dst.write(previous)
                backed_up = True

            self.cancel_token.raise_if_cancelled()
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
                await f.write(content)
        except OSError as e:
            return {"success": False, "error": f"Cannot write {path}: {e}"}

        return {
            "success": True,
            "path": str(file_path.absolute()),
            "size": len(content),
            "backed_up": backed_up,
        }
