"""
Background scanner for engine output.

Reads the engine's stdout line by line and forwards ``bestmove`` lines to a
queue. Everything else the engine prints is dropped here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

BESTMOVE_PREFIX = "bestmove"

# Queued after the last result line once the engine's output has ended.
END_OF_STREAM = None


def is_result_line(line: str) -> bool:
    """True if the first eight characters of ``line`` are ``bestmove``."""
    return line[:len(BESTMOVE_PREFIX)] == BESTMOVE_PREFIX


def decode_line(raw: bytes) -> str:
    """Decode one raw output line, dropping the line terminator."""
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class OutputScanner:
    """
    Owns the engine's stdout reader and runs as an asyncio task.

    Result lines are put on :attr:`lines`. When the stream ends, for any
    reason, :data:`END_OF_STREAM` is put on the queue so that a waiting
    consumer is released.
    """

    def __init__(self, reader: asyncio.StreamReader, name: str = "engine"):
        self._reader = reader
        self._name = name
        self.lines: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start the background read loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run(), name=f"uci-scanner:{self._name}")

    @property
    def is_running(self) -> bool:
        """True while the read loop is active."""
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        try:
            await self._read_loop()
            logger.info(f"Engine {self._name} closed its output")
        except asyncio.CancelledError:
            logger.debug(f"Scanner for {self._name} cancelled")
            raise
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading output of engine {self._name}: {e}")
        finally:
            self.lines.put_nowait(END_OF_STREAM)

    async def _read_loop(self) -> None:
        while True:
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                if self._reader.exception() is not None:
                    raise
                # readline() drops the buffered part of an overlong line
                logger.warning(f"Dropped overlong line from engine {self._name}: {e}")
                continue
            if not raw:
                return
            line = decode_line(raw)
            if is_result_line(line):
                logger.debug(f"engine out (result): {line}")
                self.lines.put_nowait(line)
            else:
                logger.debug(f"engine out: {line}")

    async def stop(self) -> None:
        """Cancel the read loop and wait for it to finish."""
        if self._task is None:
            self.lines.put_nowait(END_OF_STREAM)
            return
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
