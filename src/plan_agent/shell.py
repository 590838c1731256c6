# shell.py
# Shell collaborator for compile and terminal steps.
# One command per call, run in the project root, output captured whole.

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellResult:
    command: str
    exit_code: int | None
    output: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


class ShellRunner:
    def __init__(self, cwd: Path, timeout: float = 120.0, max_output: int = 20_000) -> None:
        self.cwd = Path(cwd)
        self.timeout = timeout
        self.max_output = max_output

    async def run(self, command: str, timeout: float | None = None) -> ShellResult:
        """Run ``command`` through the system shell; stderr is merged into stdout."""
        logger.info("Running shell command: %s", command)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout or self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Shell command timed out: %s", command)
            return ShellResult(command=command, exit_code=None, output="", timed_out=True)

        output = stdout.decode("utf-8", errors="replace")
        if len(output) > self.max_output:
            output = output[-self.max_output:]
        return ShellResult(command=command, exit_code=proc.returncode, output=output)
