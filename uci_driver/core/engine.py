"""
UCI engine sessions.

This module ties the process supervisor and the output scanner together into
a session object that turns a SearchJob into UCI commands, sends them, and
waits for the engine's ``bestmove`` answer.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from .errors import (
    EngineError,
    EngineClosedError,
    EngineTerminatedError,
    EngineTimeoutError,
    EngineWriteError,
)
from .models import Config, SearchJob, SearchResult
from .process import EngineProcess
from .scanner import END_OF_STREAM, OutputScanner

logger = logging.getLogger(__name__)


def build_commands(job: SearchJob) -> List[str]:
    """
    Serialize a search job into the UCI lines that run it.

    Options come first, then the position, then ``go``.
    """
    commands = [
        f"setoption name {name} value {value}"
        for name, value in job.engine_options.items()
    ]
    commands.append(job.position.command)

    go_command = "go"
    for name, value in job.go_options.items():
        go_command += f" {name} {value}"
    commands.append(go_command)

    return commands


class UciEngine:
    """
    A session with one UCI engine process.

    Searches are serialized: concurrent calls to :meth:`go` queue up on a
    lock and run one after another, each receiving the result of its own
    search. A session cannot be restarted once closed.
    """

    def __init__(self, engine_path: Optional[str] = None, config: Optional[Config] = None):
        """
        Initialize the session. Nothing is started until :meth:`start`.

        Args:
            engine_path: Path to the UCI engine executable; falls back to
                ``config.engine_path``
            config: Session configuration
        """
        self.config = config or Config()
        path = engine_path or self.config.engine_path
        if not path:
            raise EngineError("No engine path given")
        self.engine_path = path

        self._process: Optional[EngineProcess] = None
        self._scanner: Optional[OutputScanner] = None
        self._lock = asyncio.Lock()
        # Results still owed by searches that timed out or were cancelled.
        self._abandoned = 0
        self._terminated = False
        self._closed = False

    @classmethod
    async def popen(cls, engine_path: str, config: Optional[Config] = None) -> UciEngine:
        """Create a session and start the engine in one step."""
        engine = cls(engine_path, config)
        await engine.start()
        return engine

    async def start(self) -> None:
        """
        Spawn the engine and begin scanning its output.

        Raises:
            EngineSpawnError: If the executable cannot be started
            EngineStdioError: If the process has no usable pipes
            EngineClosedError: If the session was already closed
        """
        if self._closed:
            raise EngineClosedError("Engine session is closed and cannot be restarted")
        if self._process is not None:
            return

        self._process = await EngineProcess.spawn(self.engine_path)
        self._scanner = OutputScanner(self._process.stdout, name=self.engine_path)
        self._scanner.start()
        logger.info(f"Started engine: {self.engine_path}")

    async def close(self) -> None:
        """
        Shut the session down.

        Sends ``quit``, stops the scanner, and waits for the process to exit
        (terminating it if it does not). Searches still waiting for a result
        fail with EngineClosedError. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        if self._process is None:
            return

        if self._process.is_running:
            try:
                await self._process.write_line("quit")
            except EngineWriteError as e:
                logger.debug(f"Could not send quit: {e}")

        await self._process.close(self.config.quit_timeout)
        await self._scanner.stop()
        logger.info("Engine stopped successfully")

    async def go(self, job: SearchJob, timeout: Optional[float] = None) -> SearchResult:
        """
        Run a search and wait for its result.

        Args:
            job: Options, position and search limits to send
            timeout: Seconds to wait for ``bestmove``; defaults to
                ``config.search_timeout`` (None waits forever)

        Returns:
            The parsed best move and ponder move

        Raises:
            EngineWriteError: If the commands could not be sent
            EngineTerminatedError: If engine output ends first
            EngineTimeoutError: If the timeout expires (the search is stopped)
            EngineClosedError: If the session is or gets closed
        """
        if timeout is None:
            timeout = self.config.search_timeout

        async with self._lock:
            self._check_usable()

            for command in build_commands(job):
                await self._issue_command(command)

            line = await self._next_result(timeout)

        result = SearchResult.from_line(line)
        logger.debug(f"Engine selected move: {result}")
        return result

    async def _issue_command(self, command: str) -> None:
        logger.debug(f"issuing uci command: {command}")
        await self._process.write_line(command)

    def _check_usable(self) -> None:
        if self._closed:
            raise EngineClosedError("Engine session is closed")
        if self._process is None:
            raise EngineError("Engine not started")
        if self._terminated:
            raise EngineTerminatedError(
                f"Engine {self.engine_path} output has ended "
                f"(exit status {self._process.returncode})"
            )

    async def _receive(self) -> str:
        line = await self._scanner.lines.get()
        if line is END_OF_STREAM:
            self._terminated = True
            if self._closed:
                raise EngineClosedError("Engine session closed while waiting for a result")
            raise EngineTerminatedError(
                f"Engine {self.engine_path} output ended before a bestmove "
                f"(exit status {self._process.returncode})"
            )
        return line

    async def _next_result(self, timeout: Optional[float]) -> str:
        """Wait for this search's result line, skipping ones owed to abandoned searches."""
        try:
            while self._abandoned:
                stale = await self._receive()
                self._abandoned -= 1
                logger.debug(f"Discarding result of abandoned search: {stale}")

            if timeout is None:
                return await self._receive()
            return await asyncio.wait_for(self._receive(), timeout)
        except asyncio.TimeoutError:
            self._abandoned += 1
            await self._stop_search()
            raise EngineTimeoutError(f"No bestmove from engine within {timeout}s") from None
        except asyncio.CancelledError:
            self._abandoned += 1
            await self._stop_search()
            raise

    async def _stop_search(self) -> None:
        """Ask the engine to finish the current search early."""
        try:
            await self._issue_command("stop")
        except EngineWriteError as e:
            logger.debug(f"Could not send stop: {e}")

    @property
    def is_running(self) -> bool:
        """True if the engine is started, not closed, and still producing output."""
        return (
            self._process is not None
            and not self._closed
            and not self._terminated
            and self._scanner.is_running
        )

    @property
    def returncode(self) -> Optional[int]:
        """Exit status of the engine process, once it has exited."""
        return self._process.returncode if self._process else None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit with cleanup."""
        await self.close()


def autodetect_engine(cli_path: Optional[str] = None, name: str = "stockfish") -> Optional[str]:
    """
    Auto-detect a UCI engine executable.

    Search order:
    1. Explicit CLI path argument
    2. UCI_ENGINE_PATH environment variable
    3. <NAME>_PATH environment variable (e.g. STOCKFISH_PATH)
    4. System PATH lookup
    5. Common installation directories

    Args:
        cli_path: Explicitly provided path (highest priority)
        name: Executable name to look for

    Returns:
        Path to the engine executable if found, None otherwise
    """
    if cli_path and Path(cli_path).exists():
        return cli_path

    for env_var in ("UCI_ENGINE_PATH", f"{name.upper()}_PATH"):
        env_path = os.getenv(env_var)
        if env_path and Path(env_path).exists():
            return env_path

    which_path = shutil.which(name)
    if which_path:
        return which_path

    common_paths = [
        f"/usr/local/bin/{name}",
        f"/usr/bin/{name}",
        f"/usr/games/{name}",
        f"/opt/homebrew/bin/{name}",
        f"C:/Program Files/{name.capitalize()}/{name}.exe",
        f"C:/{name}/{name}.exe",
    ]

    for path in common_paths:
        if Path(path).exists():
            return path

    return None


def get_friendly_engine_hint() -> str:
    """
    Get a user-friendly message about how to make an engine available.

    Returns:
        Formatted installation instructions
    """
    return (
        "No UCI engine found. Install Stockfish and try again:\n"
        "• macOS:    brew install stockfish\n"
        "• Ubuntu:   sudo apt-get install stockfish\n"
        "• Windows:  choco install stockfish\n"
        "• Manual:   Download from https://stockfishchess.org/\n"
        "\nOr point to any UCI engine: export UCI_ENGINE_PATH=/path/to/engine"
    )
