# ============================================
# SHELL TOOL
# ============================================

import asyncio
import os
from pathlib import Path
from typing import Any

import structlog

from agentloop.core.domain.config import SideEffect
from agentloop.core.domain.errors import ToolCancelledError
from agentloop.infrastructure.tools.tool import Tool

DANGEROUS_PATTERNS = (
    "rm -rf /",
    "rm -rf /*",
    "dd if=/dev/zero",
    "dd if=/dev/random",
    ":(){ :|:& };:",  # fork bomb
    "> /dev/sda",
    "mkfs.",
)


class BashTool(Tool):
    """Execute shell commands with timeout and safety limits"""

    side_effect = SideEffect.EXECUTE

    def __init__(self, working_directory: Path | None = None, allow_network: bool = False):
        super().__init__()
        self.working_directory = Path(working_directory or Path.cwd())
        self.allow_network = allow_network
        self.logger = structlog.get_logger().bind(component="bash_tool")

    @property
    def name(self) -> str:
        return "bash"

    @property
    def description(self) -> str:
        return (
            "Execute a bash command in the working directory. Returns stdout, "
            "stderr and the exit code."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The command to run"},
                "timeout": {
                    "type": "integer",
                    "description": "Seconds before the command is killed (default 30)",
                },
                "cwd": {
                    "type": "string",
                    "description": "Directory to run in, relative to the working directory",
                },
            },
            "required": ["command"],
        }

    async def execute(
        self, command: str, timeout: int = 30, cwd: str | None = None, **kwargs: Any
    ) -> dict[str, Any]:
        if any(pattern in command.lower() for pattern in DANGEROUS_PATTERNS):
            return {"success": False, "error": "Command blocked for safety reasons"}

        run_dir = self.working_directory
        if cwd:
            run_dir = Path(cwd) if Path(cwd).is_absolute() else self.working_directory / cwd
            if not run_dir.is_dir():
                return {"success": False, "error": f"cwd does not exist or is not a directory: {cwd}"}

        env = dict(os.environ)
        env["AGENTLOOP_NETWORK_ALLOWED"] = "1" if self.allow_network else "0"

        try:
            process = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(run_dir),
                env=env,
            )
        except OSError as e:
            return {"success": False, "error": f"Failed to start bash: {e}"}

        communicate = asyncio.ensure_future(process.communicate())
        cancelled = asyncio.ensure_future(self.cancel_token.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancelled}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()

        if communicate not in done:
            communicate.cancel()
            self._kill(process)
            await process.wait()
            if self.cancel_token.is_cancelled:
                self.logger.info("command_cancelled", command=command)
                raise ToolCancelledError(f"Command cancelled: {command}")
            return {"success": False, "error": f"Command timed out after {timeout}s"}

        stdout, stderr = communicate.result()
        success = process.returncode == 0
        stdout_text = stdout.decode(errors="replace") if stdout else ""
        stderr_text = stderr.decode(errors="replace") if stderr else ""

        resp = {
            "success": success,
            "stdout": stdout_text,
            "stderr": stderr_text,
            "returncode": process.returncode,
            "command": command,
        }
        if not success:
            resp["error"] = stderr_text or f"Command failed with code {process.returncode}"
        return resp

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                return
