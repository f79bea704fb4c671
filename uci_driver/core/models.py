"""
Core data models for the UCI engine driver.

This module defines the value types used to describe a search request
(position, time control, search job), the parsed search result, and the
driver configuration. None of these types perform any I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, Iterable, Optional, Union

import chess

MovesLike = Union[str, Iterable[Union[str, chess.Move]], None]


class PositionKind(str, Enum):
    """How the engine's internal board is initialised."""

    FEN = "fen"
    FEN_AND_MOVES = "fen_and_moves"
    STARTPOS = "startpos"
    STARTPOS_AND_MOVES = "startpos_and_moves"


def _join_moves(moves: MovesLike) -> Optional[str]:
    """Normalise a move list into a space-separated string, or None if empty."""
    if moves is None:
        return None
    if isinstance(moves, str):
        text = moves.strip()
    else:
        text = " ".join(m.uci() if isinstance(m, chess.Move) else str(m) for m in moves)
    return text or None


@dataclass(frozen=True)
class Position:
    """
    A position to set up before searching.

    Use the ``startpos``, ``from_fen`` and ``from_board`` constructors rather
    than building instances by hand; they pick the matching kind.
    """

    kind: PositionKind = PositionKind.STARTPOS
    fen: Optional[str] = None
    moves: Optional[str] = None

    def __post_init__(self):
        """Validate that the fields agree with the position kind."""
        needs_fen = self.kind in (PositionKind.FEN, PositionKind.FEN_AND_MOVES)
        needs_moves = self.kind in (PositionKind.FEN_AND_MOVES, PositionKind.STARTPOS_AND_MOVES)
        if needs_fen and not self.fen:
            raise ValueError(f"Position of kind {self.kind.value} requires a FEN")
        if not needs_fen and self.fen is not None:
            raise ValueError(f"Position of kind {self.kind.value} does not take a FEN")
        if needs_moves and not self.moves:
            raise ValueError(f"Position of kind {self.kind.value} requires moves")
        if not needs_moves and self.moves is not None:
            raise ValueError(f"Position of kind {self.kind.value} does not take moves")

    @classmethod
    def startpos(cls, moves: MovesLike = None) -> Position:
        """Standard starting position, optionally followed by moves."""
        joined = _join_moves(moves)
        if joined is None:
            return cls(PositionKind.STARTPOS)
        return cls(PositionKind.STARTPOS_AND_MOVES, moves=joined)

    @classmethod
    def from_fen(cls, fen: str, moves: MovesLike = None) -> Position:
        """Position given as FEN, optionally followed by moves."""
        joined = _join_moves(moves)
        if joined is None:
            return cls(PositionKind.FEN, fen=fen)
        return cls(PositionKind.FEN_AND_MOVES, fen=fen, moves=joined)

    @classmethod
    def from_board(cls, board: chess.Board) -> Position:
        """
        Build a position from a python-chess board.

        The board's root position is sent as ``startpos`` when it is the
        standard starting position and as a FEN otherwise; the move stack
        follows as the move list.
        """
        root_fen = board.root().fen()
        moves = [move.uci() for move in board.move_stack]
        if root_fen == chess.STARTING_FEN:
            return cls.startpos(moves)
        return cls.from_fen(root_fen, moves)

    @property
    def command(self) -> str:
        """The ``position`` command for this position."""
        if self.kind == PositionKind.STARTPOS:
            return "position startpos"
        if self.kind == PositionKind.FEN:
            return f"position fen {self.fen}"
        if self.kind == PositionKind.STARTPOS_AND_MOVES:
            return f"position startpos moves {self.moves}"
        return f"position fen {self.fen} moves {self.moves}"


@dataclass(frozen=True)
class TimeControl:
    """Clock state for both sides, in milliseconds."""

    wtime: int = 60000
    winc: int = 0
    btime: int = 60000
    binc: int = 0

    def __post_init__(self):
        for name in ("wtime", "winc", "btime", "binc"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

    def as_go_options(self) -> Dict[str, str]:
        """Go options carrying this time control."""
        return {
            "wtime": str(self.wtime),
            "winc": str(self.winc),
            "btime": str(self.btime),
            "binc": str(self.binc),
        }


@dataclass(frozen=True)
class SearchJob:
    """
    Everything needed to run one search.

    Option maps have unique keys; setting a key again replaces its value.
    The ``with_*`` methods never modify the job they are called on, they
    return an updated copy so calls can be chained::

        job = (SearchJob()
               .with_engine_option("Threads", 4)
               .with_position(Position.startpos("e2e4"))
               .with_time_control(TimeControl()))
    """

    engine_options: Dict[str, str] = field(default_factory=dict)
    position: Position = field(default_factory=Position)
    go_options: Dict[str, str] = field(default_factory=dict)

    def with_position(self, position: Position) -> SearchJob:
        """Return a copy with the given position."""
        return replace(self, position=position)

    def with_engine_option(self, name: str, value: Any) -> SearchJob:
        """Return a copy with an engine option (sent as ``setoption``) set."""
        options = dict(self.engine_options)
        options[name] = str(value)
        return replace(self, engine_options=options)

    def with_go_option(self, name: str, value: Any) -> SearchJob:
        """Return a copy with a go option (e.g. ``depth``, ``movetime``) set."""
        options = dict(self.go_options)
        options[name] = str(value)
        return replace(self, go_options=options)

    def with_time_control(self, time_control: TimeControl) -> SearchJob:
        """Return a copy whose wtime/winc/btime/binc come from ``time_control``."""
        options = dict(self.go_options)
        options.update(time_control.as_go_options())
        return replace(self, go_options=options)


def _to_move(token: Optional[str]) -> Optional[chess.Move]:
    """Convert a UCI token, giving None for absent or non-move tokens such as ``(none)``."""
    if not token:
        return None
    try:
        return chess.Move.from_uci(token)
    except ValueError:
        return None


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a search. Moves are opaque UCI strings, not validated."""

    bestmove: Optional[str] = None
    ponder: Optional[str] = None

    @classmethod
    def from_line(cls, line: str) -> SearchResult:
        """Parse a ``bestmove <move> [ponder <move>]`` line."""
        parts = line.split(" ")
        bestmove = parts[1] if len(parts) > 1 else None
        ponder = parts[3] if len(parts) > 3 else None
        return cls(bestmove=bestmove, ponder=ponder)

    @property
    def move(self) -> Optional[chess.Move]:
        """Best move as a python-chess move, if present."""
        return _to_move(self.bestmove)

    @property
    def ponder_move(self) -> Optional[chess.Move]:
        """Ponder move as a python-chess move, if present."""
        return _to_move(self.ponder)

    def __str__(self) -> str:
        if self.bestmove is None:
            return "(no move)"
        return f"{self.bestmove} (ponder {self.ponder})" if self.ponder else self.bestmove


@dataclass
class Config:
    """Configuration settings for an engine session."""

    engine_path: Optional[str] = None
    quit_timeout: float = 2.0  # seconds to wait for the engine to exit on close
    search_timeout: Optional[float] = None  # None waits forever

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Config:
        """Create config from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
