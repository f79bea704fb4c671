"""
UCI Driver - drive UCI chess engines from asyncio code.

This package spawns a chess engine that speaks the Universal Chess Interface,
sends it search requests, and hands back the engine's best move and ponder
move.
"""

__version__ = "0.1.0"
__author__ = "UCI Driver Team"
__license__ = "MIT"

# Core imports
from .core.models import Position, TimeControl, SearchJob, SearchResult, Config
from .core.errors import EngineError
from .core.engine import UciEngine
from .cli import main

__all__ = [
    "Position",
    "TimeControl",
    "SearchJob",
    "SearchResult",
    "Config",
    "EngineError",
    "UciEngine",
    "main",
]
