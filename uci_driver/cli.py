"""
Command-line interface for the UCI driver.

Runs a single search against a UCI engine and prints the best move, mainly
useful for checking that an engine binary works with the driver.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Dict, List, Optional

import chess
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .core.engine import UciEngine, autodetect_engine, get_friendly_engine_hint
from .core.errors import EngineError
from .core.models import Config, Position, SearchJob, SearchResult, TimeControl

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(level: int = logging.WARNING) -> None:
    """Route log records through rich on stderr."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=False, markup=False)
    handler.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def parse_option(text: str) -> tuple:
    """Split a ``NAME=VALUE`` engine option; names may contain spaces."""
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got '{text}'")
    return name.strip(), value.strip()


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="uci-driver",
        description="Run one search on a UCI chess engine and print its best move",
    )

    parser.add_argument(
        "--engine",
        type=str,
        help="Path to the UCI engine (default: autodetect Stockfish)"
    )
    parser.add_argument(
        "--fen",
        type=str,
        help="Start from this FEN instead of the standard position"
    )
    parser.add_argument(
        "--moves",
        type=str,
        default="",
        help="Space-separated UCI moves to play from the start position or --fen"
    )
    parser.add_argument(
        "--option",
        type=parse_option,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Engine option to set before searching (repeatable)"
    )

    # Search limits
    parser.add_argument("--depth", type=int, help="Search depth in plies")
    parser.add_argument("--movetime", type=int, help="Search time in milliseconds")
    parser.add_argument("--nodes", type=int, help="Node limit")
    parser.add_argument("--wtime", type=int, help="White clock in milliseconds")
    parser.add_argument("--winc", type=int, default=0, help="White increment in milliseconds")
    parser.add_argument("--btime", type=int, help="Black clock in milliseconds")
    parser.add_argument("--binc", type=int, default=0, help="Black increment in milliseconds")

    parser.add_argument(
        "--timeout",
        type=float,
        help="Give up if no move arrives within this many seconds"
    )
    parser.add_argument(
        "--show-board",
        action="store_true",
        help="Print the position after the best move"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log engine traffic (-v info, -vv debug)"
    )

    return parser


def build_job(args: argparse.Namespace) -> SearchJob:
    """Turn parsed arguments into a search job."""
    if args.fen:
        position = Position.from_fen(args.fen, args.moves)
    else:
        position = Position.startpos(args.moves)

    job = SearchJob().with_position(position)

    options: List[tuple] = args.option
    for name, value in options:
        job = job.with_engine_option(name, value)

    if args.wtime is not None or args.btime is not None:
        defaults = TimeControl()
        job = job.with_time_control(TimeControl(
            wtime=args.wtime if args.wtime is not None else defaults.wtime,
            winc=args.winc,
            btime=args.btime if args.btime is not None else defaults.btime,
            binc=args.binc,
        ))

    limits: Dict[str, Optional[int]] = {
        "depth": args.depth,
        "movetime": args.movetime,
        "nodes": args.nodes,
    }
    for name, value in limits.items():
        if value is not None:
            job = job.with_go_option(name, value)

    return job


def render_result(job: SearchJob, result: SearchResult, show_board: bool = False) -> None:
    """Print a search result to the console."""
    table = Table(title="Search result", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    table.add_row("Position", job.position.command)
    table.add_row("Best move", result.bestmove or "[dim]none[/dim]")
    table.add_row("Ponder", result.ponder or "[dim]none[/dim]")
    console.print(table)

    if not show_board or result.bestmove is None:
        return

    try:
        board = chess.Board(job.position.fen) if job.position.fen else chess.Board()
        for token in (job.position.moves or "").split():
            board.push_uci(token)
        board.push_uci(result.bestmove)
    except ValueError as e:
        console.print(f"[yellow]Cannot draw board: {e}[/yellow]")
        return

    console.print(Panel(str(board), title=f"After {result.bestmove}", expand=False))


async def main_async(args: argparse.Namespace) -> int:
    """Main async entry point."""
    engine_path = args.engine or autodetect_engine()
    if not engine_path:
        console.print(f"[red]{get_friendly_engine_hint()}[/red]")
        return 2

    try:
        job = build_job(args)
    except ValueError as e:
        console.print(f"[red]Invalid search request: {e}[/red]")
        return 1

    config = Config(engine_path=engine_path, search_timeout=args.timeout)

    try:
        async with UciEngine(config=config) as engine:
            result = await engine.go(job)
    except EngineError as e:
        console.print(f"[bold red]Engine error: {e}[/bold red]")
        logger.debug("Search failed", exc_info=True)
        return 1

    render_result(job, result, show_board=args.show_board)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    levels = {0: logging.WARNING, 1: logging.INFO}
    setup_logging(levels.get(args.verbose, logging.DEBUG))

    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Interrupted by user[/bold yellow]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
