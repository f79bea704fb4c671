"""
Core package for the UCI engine driver.

This package contains the request/result data models, the engine process
supervisor, the output scanner, and the session that ties them together.
"""

from .models import (
    Position,
    PositionKind,
    TimeControl,
    SearchJob,
    SearchResult,
    Config
)

from .errors import (
    EngineError,
    EngineSpawnError,
    EngineStdioError,
    EngineWriteError,
    EngineTerminatedError,
    EngineClosedError,
    EngineTimeoutError
)

from .process import EngineProcess
from .scanner import OutputScanner

from .engine import (
    UciEngine,
    build_commands,
    autodetect_engine,
    get_friendly_engine_hint
)

__all__ = [
    # Data models
    "Position",
    "PositionKind",
    "TimeControl",
    "SearchJob",
    "SearchResult",
    "Config",

    # Errors
    "EngineError",
    "EngineSpawnError",
    "EngineStdioError",
    "EngineWriteError",
    "EngineTerminatedError",
    "EngineClosedError",
    "EngineTimeoutError",

    # Engine components
    "EngineProcess",
    "OutputScanner",
    "UciEngine",
    "build_commands",
    "autodetect_engine",
    "get_friendly_engine_hint",
]
