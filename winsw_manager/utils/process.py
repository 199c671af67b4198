import asyncio
import locale
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from pydantic import BaseModel

from ..errors import ExecutionError

# Create a thread pool for running commands asynchronously
executor = ThreadPoolExecutor(max_workers=4)

logger = logging.getLogger("winsw_manager.process")

REDACTED = '***'


class CommandResult(BaseModel):
    """
    Outcome of one external command.
    """
    command: List[str]
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        """Exit code 0 and nothing written to the error stream."""
        return self.returncode == 0 and not self.stderr.strip()


def _decode(data) -> str:
    if data is None:
        return ''
    if isinstance(data, str):
        return data
    # Try utf-8 first, then fall back to the system encoding
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return data.decode(locale.getpreferredencoding(False), errors='replace')


def redact(cmd: Sequence[str], secrets: Sequence[str] = ()) -> List[str]:
    """Copy of cmd with every secret argument replaced."""
    hidden = {secret for secret in secrets if secret}
    return [REDACTED if arg in hidden else arg for arg in cmd]


class CommandRunner:
    """
    Runs external commands in a worker thread so callers can await them.

    No timeout is applied; a hung process blocks the awaiting coroutine.
    """
    def __init__(self, pool: Optional[ThreadPoolExecutor] = None):
        self.pool = pool or executor

    async def run(self, cmd: Sequence[str], secrets: Sequence[str] = ()) -> CommandResult:
        """
        Run a command and collect its exit code and output.

        Args:
            cmd: Command and arguments
            secrets: Arguments to hide in logs and results

        Returns:
            CommandResult: Exit code, stdout and stderr of the process
        """
        cmd = list(cmd)
        shown = redact(cmd, secrets)
        logger.debug(f"Running: {subprocess.list2cmdline(shown)}")

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            self.pool,
            lambda: subprocess.run(cmd, capture_output=True, check=False)
        )
        return CommandResult(
            command=shown,
            returncode=result.returncode,
            stdout=_decode(result.stdout),
            stderr=_decode(result.stderr),
        )

    async def check(self, cmd: Sequence[str], secrets: Sequence[str] = ()) -> str:
        """
        Run a command and return its stdout.

        Raises:
            ExecutionError: If the command exits non-zero or writes to stderr
        """
        result = await self.run(cmd, secrets)
        if not result.ok:
            error = ExecutionError(result.command, result.returncode, result.stderr)
            logger.error(str(error))
            raise error
        return result.stdout
