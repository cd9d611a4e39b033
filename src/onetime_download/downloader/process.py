"""Subprocess invocation for the yt-dlp executable."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional, Protocol, Sequence


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class ProcessError(RuntimeError):
    """Base class for process invocation failures."""


class ProcessStartError(ProcessError):
    """Raised when the executable cannot be spawned."""


class ProcessTimeoutError(ProcessError):
    """Raised when the process exceeds its deadline and was killed."""


class ProcessExitError(ProcessError):
    """Raised when a streamed process exits with a non-zero status."""

    def __init__(self, returncode: int) -> None:
        super().__init__(f"process exited with status {returncode}")
        self.returncode = returncode


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of a finished process."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_tail(self, max_lines: int = 6) -> str:
        """Last few lines of stderr, for logs and error messages."""

        text = self.stderr.decode("utf-8", "replace").strip()
        if not text:
            return ""
        return "\n".join(text.splitlines()[-max_lines:])


class ProcessRunner(Protocol):
    """Runs a command either to completion or as a byte stream."""

    async def capture(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        ...

    def stream(
        self,
        args: Sequence[str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: Optional[float] = None,
    ) -> AsyncGenerator[bytes, None]:
        ...


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


class SubprocessRunner:
    """ProcessRunner backed by asyncio subprocesses."""

    async def capture(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        """Run args to completion and capture stdout and stderr."""

        process = await self._spawn(
            args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            await _terminate(process)
            raise ProcessTimeoutError(
                f"{args[0]} did not finish within {timeout} seconds"
            ) from exc
        finally:
            # Caller was cancelled while waiting.
            if process.returncode is None:
                await _terminate(process)

        return ProcessResult(
            returncode=process.returncode,
            stdout=stdout or b"",
            stderr=stderr or b"",
        )

    async def stream(
        self,
        args: Sequence[str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: Optional[float] = None,
    ) -> AsyncGenerator[bytes, None]:
        """Yield stdout chunks as they are produced.

        stderr is inherited so diagnostics land on the server's own stderr.
        Closing the iterator early kills the process.
        """

        process = await self._spawn(
            args,
            stdout=asyncio.subprocess.PIPE,
            stderr=None,
        )
        assert process.stdout is not None
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        process.stdout.read(chunk_size),
                        timeout=idle_timeout,
                    )
                except asyncio.TimeoutError as exc:
                    raise ProcessTimeoutError(
                        f"{args[0]} produced no output for {idle_timeout} seconds"
                    ) from exc
                if not chunk:
                    break
                yield chunk

            returncode = await process.wait()
            if returncode != 0:
                raise ProcessExitError(returncode)
        finally:
            if process.returncode is None:
                logger.info("Killing %s (pid %s)", args[0], process.pid)
                await _terminate(process)

    @staticmethod
    async def _spawn(
        args: Sequence[str],
        *,
        stdout: Optional[int],
        stderr: Optional[int],
    ) -> asyncio.subprocess.Process:
        if not args:
            raise ProcessStartError("Empty command line.")
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
            )
        except OSError as exc:
            raise ProcessStartError(f"Cannot start {args[0]}: {exc}") from exc
