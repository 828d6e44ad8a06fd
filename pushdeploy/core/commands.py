"""External command execution."""

import asyncio
import time
from typing import Mapping

from pushdeploy.models.deployment import CommandResult
from pushdeploy.utils.logging import get_logger

# Keep at most this much combined output per command
MAX_OUTPUT_CHARS = 4000


class CommandRunner:
    """Runs shell commands with a timeout.

    A timeout is reported exactly like a non-zero exit: ``success=False``.
    """

    def __init__(self, timeout: float = 300.0):
        self.timeout = timeout
        self.logger = get_logger("commands")

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run one command and capture its outcome."""
        timeout = timeout or self.timeout
        start_time = time.perf_counter()

        self.logger.info("command.started", cmd=command, cwd=cwd)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            self.logger.error("command.spawn_failed", cmd=command, error=str(e))
            return CommandResult(command=command, success=False, output=str(e))

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            self.logger.error("command.timed_out", cmd=command, timeout=timeout)
            return CommandResult(
                command=command,
                success=False,
                exit_code=process.returncode,
                output=f"Command timed out after {timeout} seconds",
                timed_out=True,
                duration_ms=duration_ms,
            )
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        output = stdout.decode(errors="replace") if stdout else ""
        success = process.returncode == 0

        log = self.logger.info if success else self.logger.warning
        log(
            "command.finished",
            cmd=command,
            returncode=process.returncode,
            duration_ms=duration_ms,
        )

        return CommandResult(
            command=command,
            success=success,
            exit_code=process.returncode,
            output=output[-MAX_OUTPUT_CHARS:],
            duration_ms=duration_ms,
        )
