"""
Tests for UCI engine sessions.

Command serialization is tested directly; session behaviour is tested
against tests/fake_engine.py running as a real child process.
"""

import asyncio
import os
import shlex
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from uci_driver.core.engine import (
    UciEngine,
    autodetect_engine,
    build_commands,
    get_friendly_engine_hint,
)
from uci_driver.core.errors import (
    EngineClosedError,
    EngineError,
    EngineSpawnError,
    EngineTerminatedError,
    EngineTimeoutError,
    EngineWriteError,
)
from uci_driver.core.models import Config, Position, SearchJob, TimeControl
from uci_driver.core.process import EngineProcess

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


def make_engine_script(directory: str, mode: str = "normal", log_path: str = "") -> str:
    """Write an executable wrapper that starts the fake engine in ``mode``."""
    script = Path(directory) / f"fake-{mode}"
    script.write_text(
        "#!/bin/sh\n"
        f"FAKE_ENGINE_LOG={shlex.quote(log_path)} "
        f"exec {shlex.quote(sys.executable)} {shlex.quote(str(FAKE_ENGINE))} {shlex.quote(mode)}\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


class BuildCommandsTests(unittest.TestCase):
    """Test serialization of search jobs into UCI lines."""

    def test_startpos_without_options(self):
        self.assertEqual(build_commands(SearchJob()), ["position startpos", "go"])

    def test_full_job(self):
        job = (SearchJob()
               .with_engine_option("Hash", 32)
               .with_engine_option("Skill Level", 5)
               .with_position(Position.startpos("e2e4 e7e5"))
               .with_go_option("depth", 12))
        commands = build_commands(job)

        self.assertEqual(sorted(commands[:2]), [
            "setoption name Hash value 32",
            "setoption name Skill Level value 5",
        ])
        self.assertEqual(commands[2], "position startpos moves e2e4 e7e5")
        self.assertEqual(commands[3], "go depth 12")

    def test_one_setoption_per_key(self):
        job = SearchJob().with_engine_option("Threads", 1).with_engine_option("Threads", 8)
        self.assertEqual(build_commands(job)[0], "setoption name Threads value 8")
        self.assertEqual(len(build_commands(job)), 3)

    def test_fen_position(self):
        fen = "8/8/8/8/8/8/k7/7K w - - 0 1"
        job = SearchJob().with_position(Position.from_fen(fen, "h1g1"))
        self.assertEqual(build_commands(job)[0], f"position fen {fen} moves h1g1")

    def test_go_with_time_control(self):
        job = SearchJob().with_time_control(TimeControl(wtime=1000, winc=1, btime=2000, binc=2))
        go = build_commands(job)[-1].split(" ")

        self.assertEqual(go[0], "go")
        pairs = dict(zip(go[1::2], go[2::2]))
        self.assertEqual(pairs, {"wtime": "1000", "winc": "1", "btime": "2000", "binc": "2"})


@unittest.skipUnless(os.name == "posix", "fake engine wrapper needs a POSIX shell")
class UciEngineSessionTests(unittest.IsolatedAsyncioTestCase):
    """Test sessions against the scripted fake engine."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = self._tmp.name
        self.log_path = str(Path(self.tmpdir) / "engine.log")
        self.config = Config(quit_timeout=1.0)
        self.addCleanup(self._tmp.cleanup)

    async def _open(self, mode: str = "normal") -> UciEngine:
        path = make_engine_script(self.tmpdir, mode, self.log_path)
        engine = await UciEngine.popen(path, self.config)
        self.addAsyncCleanup(engine.close)
        return engine

    def _received(self):
        return Path(self.log_path).read_text().splitlines()

    async def test_single_search(self):
        engine = await self._open()
        result = await asyncio.wait_for(engine.go(SearchJob()), 5)

        self.assertEqual(result.bestmove, "e2e4")
        self.assertEqual(result.ponder, "e7e5")
        self.assertTrue(engine.is_running)

    async def test_commands_reach_engine_in_order(self):
        engine = await self._open()
        job = (SearchJob()
               .with_engine_option("Hash", 32)
               .with_position(Position.startpos("e2e4"))
               .with_time_control(TimeControl()))
        await asyncio.wait_for(engine.go(job), 5)
        await engine.close()

        received = self._received()
        self.assertEqual(received[0], "setoption name Hash value 32")
        self.assertEqual(received[1], "position startpos moves e2e4")
        self.assertTrue(received[2].startswith("go "))
        self.assertEqual(
            sorted(received[2].split(" ")[1:]),
            sorted(["wtime", "60000", "winc", "0", "btime", "60000", "binc", "0"]),
        )
        self.assertEqual(received[-1], "quit")

    async def test_sequential_searches_get_own_results(self):
        """Test that info lines are skipped and results arrive in FIFO order."""
        engine = await self._open()
        first = await asyncio.wait_for(engine.go(SearchJob()), 5)
        second = await asyncio.wait_for(engine.go(SearchJob().with_go_option("depth", 3)), 5)

        self.assertEqual(first.bestmove, "e2e4")
        self.assertEqual(second.bestmove, "d2d4")

    async def test_concurrent_searches_are_serialized(self):
        engine = await self._open()
        results = await asyncio.wait_for(
            asyncio.gather(*(engine.go(SearchJob()) for _ in range(3))), 5
        )
        self.assertEqual([r.bestmove for r in results], ["e2e4", "d2d4", "c2c4"])

        received = self._received()
        self.assertEqual(received, ["position startpos", "go"] * 3)

    async def test_engine_exit_ends_pending_search(self):
        engine = await self._open("exit-on-go")

        with self.assertRaises(EngineTerminatedError):
            await asyncio.wait_for(engine.go(SearchJob()), 5)
        self.assertFalse(engine.is_running)

        with self.assertRaises(EngineTerminatedError):
            await engine.go(SearchJob())

        await engine.close()
        self.assertEqual(engine.returncode, 3)

    async def test_timeout_discards_late_result(self):
        engine = await self._open()
        infinite = SearchJob().with_go_option("infinite", "")

        with self.assertRaises(EngineTimeoutError):
            await engine.go(infinite, timeout=0.3)

        # The stopped search answers a2a3; the next search must not see it.
        result = await asyncio.wait_for(engine.go(SearchJob()), 5)
        self.assertEqual(result.bestmove, "e2e4")
        self.assertIn("stop", self._received())

    async def test_config_search_timeout(self):
        self.config = Config(quit_timeout=1.0, search_timeout=0.3)
        engine = await self._open()

        with self.assertRaises(EngineTimeoutError):
            await engine.go(SearchJob().with_go_option("infinite", ""))

    async def test_cancelled_search_discards_late_result(self):
        engine = await self._open()
        task = asyncio.ensure_future(engine.go(SearchJob().with_go_option("infinite", "")))
        await asyncio.sleep(0.3)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task

        result = await asyncio.wait_for(engine.go(SearchJob()), 5)
        self.assertEqual(result.bestmove, "e2e4")

    async def test_close_fails_pending_search(self):
        engine = await self._open()
        task = asyncio.ensure_future(engine.go(SearchJob().with_go_option("infinite", "")))
        await asyncio.sleep(0.3)

        await engine.close()

        with self.assertRaises(EngineClosedError):
            await asyncio.wait_for(task, 5)
        self.assertFalse(engine.is_running)

    async def test_closed_session_rejects_work(self):
        engine = await self._open()
        await engine.close()
        await engine.close()

        with self.assertRaises(EngineClosedError):
            await engine.go(SearchJob())
        with self.assertRaises(EngineClosedError):
            await engine.start()

    async def test_close_terminates_stubborn_engine(self):
        self.config = Config(quit_timeout=0.3)
        engine = await self._open("stubborn")

        await asyncio.wait_for(engine.close(), 5)
        self.assertIsNotNone(engine.returncode)
        self.assertNotEqual(engine.returncode, 0)

    async def test_context_manager(self):
        path = make_engine_script(self.tmpdir, "normal", self.log_path)

        async with UciEngine(path, self.config) as engine:
            self.assertTrue(engine.is_running)
            result = await asyncio.wait_for(engine.go(SearchJob()), 5)
            self.assertEqual(result.bestmove, "e2e4")

        self.assertFalse(engine.is_running)
        self.assertEqual(engine.returncode, 0)

    async def test_process_write_after_close(self):
        path = make_engine_script(self.tmpdir, "normal", self.log_path)
        process = await EngineProcess.spawn(path)
        await process.close(1.0)

        self.assertFalse(process.is_running)
        with self.assertRaises(EngineWriteError):
            await process.write_line("isready")


class UciEngineSetupTests(unittest.IsolatedAsyncioTestCase):
    """Test session construction and start-up failures."""

    def test_requires_path(self):
        with self.assertRaises(EngineError):
            UciEngine()

    def test_path_from_config(self):
        engine = UciEngine(config=Config(engine_path="/fake/engine"))
        self.assertEqual(engine.engine_path, "/fake/engine")
        self.assertFalse(engine.is_running)
        self.assertIsNone(engine.returncode)

    async def test_missing_executable(self):
        with self.assertRaises(EngineSpawnError) as context:
            await UciEngine.popen("/nonexistent/path/to/engine")

        self.assertIn("Failed to start engine", str(context.exception))

    @unittest.skipUnless(os.name == "posix", "needs POSIX permissions")
    async def test_not_executable(self):
        with tempfile.NamedTemporaryFile(suffix="-engine") as temp_file:
            with self.assertRaises(EngineSpawnError):
                await UciEngine.popen(temp_file.name)

    async def test_go_before_start(self):
        engine = UciEngine("/fake/engine")
        with self.assertRaises(EngineError) as context:
            await engine.go(SearchJob())

        self.assertIn("Engine not started", str(context.exception))

    async def test_close_before_start(self):
        engine = UciEngine("/fake/engine")
        await engine.close()
        with self.assertRaises(EngineClosedError):
            await engine.go(SearchJob())


class EngineDetectionTests(unittest.TestCase):
    """Test engine auto-detection."""

    def test_autodetect_explicit_path(self):
        with tempfile.NamedTemporaryFile() as temp_file:
            self.assertEqual(autodetect_engine(temp_file.name), temp_file.name)

    @patch.dict(os.environ, {"UCI_ENGINE_PATH": "/env/engine"})
    @patch('pathlib.Path.exists', autospec=True)
    def test_autodetect_generic_env_variable(self, mock_exists):
        mock_exists.side_effect = lambda self: str(self) == "/env/engine"
        self.assertEqual(autodetect_engine(), "/env/engine")

    @patch.dict(os.environ, {"STOCKFISH_PATH": "/env/stockfish"}, clear=True)
    @patch('pathlib.Path.exists', autospec=True)
    def test_autodetect_named_env_variable(self, mock_exists):
        mock_exists.side_effect = lambda self: str(self) == "/env/stockfish"
        self.assertEqual(autodetect_engine(), "/env/stockfish")

    @patch.dict(os.environ, {}, clear=True)
    @patch('shutil.which')
    def test_autodetect_system_path(self, mock_which):
        mock_which.return_value = "/usr/bin/lc0"
        self.assertEqual(autodetect_engine(name="lc0"), "/usr/bin/lc0")
        mock_which.assert_called_once_with("lc0")

    @patch.dict(os.environ, {}, clear=True)
    @patch('shutil.which')
    @patch('pathlib.Path.exists', autospec=True)
    def test_autodetect_common_paths(self, mock_exists, mock_which):
        mock_which.return_value = None
        mock_exists.side_effect = lambda self: str(self) == "/usr/games/stockfish"
        self.assertEqual(autodetect_engine(), "/usr/games/stockfish")

    @patch.dict(os.environ, {}, clear=True)
    @patch('shutil.which')
    @patch('pathlib.Path.exists')
    def test_autodetect_not_found(self, mock_exists, mock_which):
        mock_exists.return_value = False
        mock_which.return_value = None
        self.assertIsNone(autodetect_engine())

    def test_friendly_hint(self):
        hint = get_friendly_engine_hint()
        self.assertIn("macOS", hint)
        self.assertIn("Ubuntu", hint)
        self.assertIn("UCI_ENGINE_PATH", hint)


if __name__ == "__main__":
    unittest.main()
