"""
Engine process supervision.

Starts the engine executable with piped stdin/stdout, owns the write side of
the pipe, and watches for the process to exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .errors import EngineSpawnError, EngineStdioError, EngineWriteError

logger = logging.getLogger(__name__)

# Per-line read limit for engine output; asyncio defaults to 64 KiB.
STDOUT_LIMIT = 1024 * 1024


class EngineProcess:
    """
    A running engine child process.

    Create instances with :meth:`spawn`. The stdout stream is meant to be
    handed to exactly one reader (see ``OutputScanner``); writes go through
    :meth:`write_line`.
    """

    def __init__(self, path: str, process: asyncio.subprocess.Process):
        self.path = path
        self._process = process
        self._stdin: asyncio.StreamWriter = process.stdin
        self._stdout: asyncio.StreamReader = process.stdout
        self._returncode: Optional[int] = None
        self._closed = False
        self._watcher = asyncio.create_task(self._watch_exit(), name=f"uci-exit-watcher:{path}")

    @classmethod
    async def spawn(cls, path: str) -> EngineProcess:
        """
        Start the engine at ``path`` with no arguments.

        Raises:
            EngineSpawnError: If the executable cannot be started
            EngineStdioError: If the pipes are missing
        """
        try:
            process = await asyncio.create_subprocess_exec(
                path,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=STDOUT_LIMIT,
            )
        except (OSError, ValueError) as e:
            raise EngineSpawnError(f"Failed to start engine at {path}: {e}") from e

        if process.stdin is None or process.stdout is None:
            process.kill()
            raise EngineStdioError(f"Engine at {path} has no stdin/stdout pipe")

        logger.info(f"Spawned engine {path} (pid {process.pid})")
        return cls(path, process)

    async def _watch_exit(self) -> None:
        """Wait for the process to exit and record its status."""
        returncode = await self._process.wait()
        self._returncode = returncode
        if returncode == 0 or self._closed:
            logger.info(f"Engine {self.path} exited with status {returncode}")
        else:
            logger.warning(f"Engine {self.path} exited unexpectedly with status {returncode}")

    @property
    def stdout(self) -> asyncio.StreamReader:
        """Read side of the engine's standard output."""
        return self._stdout

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        """Exit status once the process has ended, else None."""
        return self._returncode

    @property
    def is_running(self) -> bool:
        """True while the child process has not exited."""
        return self._returncode is None and self._process.returncode is None

    async def write_line(self, line: str) -> None:
        """
        Write one newline-terminated command and flush it.

        Raises:
            EngineWriteError: If the pipe is closed or broken
        """
        if self._closed or self._stdin.is_closing():
            raise EngineWriteError(f"Cannot write to engine {self.path}: stdin is closed")

        try:
            self._stdin.write(f"{line}\n".encode("utf-8"))
            await self._stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EngineWriteError(f"Failed to write to engine {self.path}: {e}") from e

    async def close(self, timeout: float = 2.0) -> None:
        """
        Close stdin and make sure the process is gone.

        Waits up to ``timeout`` seconds for a voluntary exit, then terminates
        and finally kills the process. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        try:
            self._stdin.close()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Ignoring error closing engine stdin: {e}")

        try:
            await asyncio.wait_for(asyncio.shield(self._watcher), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Engine {self.path} did not exit within {timeout}s, terminating")
            await self._terminate(timeout)

    async def _terminate(self, timeout: float) -> None:
        try:
            self._process.terminate()
            await asyncio.wait_for(asyncio.shield(self._watcher), timeout)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            logger.warning(f"Engine {self.path} ignored SIGTERM, killing")
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
        await self._watcher
