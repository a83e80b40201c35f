"""
Subprocess contract of the external delta tool (xdelta3 command line).

Arguments are always passed as a vector, never through a shell. Every spawn
holds one slot of a shared semaphore for its whole lifetime, and a process that
times out or whose awaiting task is cancelled is killed and reaped before
control returns.
"""

import asyncio
import logging
import os
import shutil
import time
from dataclasses import dataclass
from typing import List, Optional

from common.constants import (
    MAX_CONCURRENT_SUBPROCESSES,
    PROBE_TIMEOUT_SECONDS,
    TOOL_INSTALL_INSTRUCTIONS,
    TOOL_NOT_FOUND_MESSAGE,
)
from common.exceptions import (
    DecodingTimeoutError,
    EncodingTimeoutError,
    SubprocessFailureError,
    ToolUnavailableError,
)
from common.types import OptimizationProfile, ToolCapability

logger = logging.getLogger(__name__)

USAGE_MARKERS = ("xdelta", "usage")


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one finished subprocess.
    """
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: float

    @property
    def success(self) -> bool:
        return self.returncode == 0


async def run_command(argv: List[str], timeout: Optional[float]) -> CommandResult:
    """
    Run a command and collect its output.

    Args:
        argv: Executable followed by its arguments
        timeout: Seconds before the process is killed (None waits forever)

    Returns:
        CommandResult of the finished process

    Raises:
        asyncio.TimeoutError: If the process outlived the timeout (it has been killed)
        OSError: If the executable cannot be started
    """
    started = time.monotonic()
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    finally:
        if process.returncode is None:
            logger.warning(f"Killing {argv[0]} [pid={process.pid}]")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    return CommandResult(
        argv=list(argv),
        returncode=process.returncode,
        stdout=stdout.decode(errors="replace").strip(),
        stderr=stderr.decode(errors="replace").strip(),
        duration_ms=(time.monotonic() - started) * 1000,
    )


class DeltaTool:
    """
    Drives the delta encoder/decoder executable.
    """

    def __init__(
        self,
        tool_path: str,
        slots: Optional[asyncio.Semaphore] = None,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
    ):
        """
        Initialize the tool wrapper.

        Args:
            tool_path: Executable name (looked up on PATH) or path
            slots: Semaphore bounding concurrent subprocesses, shared across operations
            probe_timeout: Seconds allowed for the availability probe
        """
        self.tool_path = tool_path
        self.slots = slots or asyncio.Semaphore(MAX_CONCURRENT_SUBPROCESSES)
        self.probe_timeout = probe_timeout

    def resolve(self) -> Optional[str]:
        """
        Locate the executable.

        Returns:
            Absolute path, or None if it cannot be found
        """
        found = shutil.which(self.tool_path)
        if found:
            return found
        if os.path.isfile(self.tool_path) and os.access(self.tool_path, os.X_OK):
            return os.path.abspath(self.tool_path)
        return None

    @staticmethod
    def build_probe_args(executable: str) -> List[str]:
        return [executable, "-h"]

    @staticmethod
    def build_encode_args(
        executable: str,
        source: str,
        target: str,
        output: str,
        compression_level: int,
        skip_verification: bool = False,
    ) -> List[str]:
        """
        Argument vector for `xdelta3 -e -<level> -f [-n] -s <source> <target> <output>`.
        """
        argv = [executable, "-e", f"-{compression_level}", "-f"]
        if skip_verification:
            argv.append("-n")
        argv.extend(["-s", source, target, output])
        return argv

    @staticmethod
    def build_decode_args(
        executable: str,
        source: str,
        patch: str,
        output: str,
        skip_verification: bool = False,
    ) -> List[str]:
        """
        Argument vector for `xdelta3 -d -f [-n] -s <source> <patch> <output>`.
        """
        argv = [executable, "-d", "-f"]
        if skip_verification:
            argv.append("-n")
        argv.extend(["-s", source, patch, output])
        return argv

    async def probe(self) -> ToolCapability:
        """
        Check that the tool can be found and answers a help invocation.

        A help invocation may legitimately exit with 1 as long as it prints usage text.

        Returns:
            ToolCapability for the resolved executable

        Raises:
            ToolUnavailableError: With installation instructions
        """
        executable = self.resolve()
        if executable is None:
            raise ToolUnavailableError(
                f"{TOOL_NOT_FOUND_MESSAGE} ({self.tool_path!r} is not on PATH)\n{TOOL_INSTALL_INSTRUCTIONS}"
            )

        try:
            async with self.slots:
                result = await run_command(self.build_probe_args(executable), self.probe_timeout)
        except asyncio.TimeoutError:
            raise ToolUnavailableError(
                f"{TOOL_NOT_FOUND_MESSAGE} ({executable} did not answer within {self.probe_timeout}s)\n"
                f"{TOOL_INSTALL_INSTRUCTIONS}"
            )
        except OSError as e:
            raise ToolUnavailableError(f"{TOOL_NOT_FOUND_MESSAGE} ({executable}: {e})\n{TOOL_INSTALL_INSTRUCTIONS}")

        output = f"{result.stdout}\n{result.stderr}".lower()
        mentions_usage = any(marker in output for marker in USAGE_MARKERS)
        if not (result.success or (result.returncode == 1 and mentions_usage)):
            raise ToolUnavailableError(
                f"{TOOL_NOT_FOUND_MESSAGE} ({executable} exited with {result.returncode}: "
                f"{result.stderr or result.stdout})\n{TOOL_INSTALL_INSTRUCTIONS}"
            )

        banner = (result.stdout or result.stderr).splitlines()[0] if (result.stdout or result.stderr) else ""
        logger.info(f"Delta tool available: {executable}")
        return ToolCapability(tool_path=executable, banner=banner)

    async def encode(
        self,
        capability: ToolCapability,
        source: str,
        target: str,
        output: str,
        profile: OptimizationProfile,
        timeout: Optional[float],
    ) -> CommandResult:
        """
        Produce a patch turning source into target.

        Raises:
            EncodingTimeoutError: If the tool ran past the timeout
            SubprocessFailureError: If the tool exited non-zero
        """
        argv = self.build_encode_args(
            capability.tool_path, source, target, output,
            profile.compression_level, profile.skip_verification,
        )
        return await self._run(argv, timeout, EncodingTimeoutError, "Encoding")

    async def decode(
        self,
        capability: ToolCapability,
        source: str,
        patch: str,
        output: str,
        skip_verification: bool,
        timeout: Optional[float],
    ) -> CommandResult:
        """
        Rebuild the target from source and patch.

        Raises:
            DecodingTimeoutError: If the tool ran past the timeout
            SubprocessFailureError: If the tool exited non-zero
        """
        argv = self.build_decode_args(capability.tool_path, source, patch, output, skip_verification)
        return await self._run(argv, timeout, DecodingTimeoutError, "Decoding")

    async def _run(self, argv: List[str], timeout: Optional[float], timeout_error, action: str) -> CommandResult:
        logger.debug(f"Running {argv}")
        try:
            async with self.slots:
                result = await run_command(argv, timeout)
        except asyncio.TimeoutError:
            raise timeout_error(f"{action} timed out after {timeout}s")
        except OSError as e:
            raise ToolUnavailableError(f"{TOOL_NOT_FOUND_MESSAGE} ({argv[0]}: {e})\n{TOOL_INSTALL_INSTRUCTIONS}")

        if not result.success:
            raise SubprocessFailureError(
                f"{action} failed",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result
