#!/usr/bin/env python3
"""
UCI Driver - Main Entry Point

Runs one search on a UCI chess engine and prints the best move.

Quick Examples:
    # Search the start position to depth 12 with autodetected Stockfish
    python main.py --depth 12

    # Explicit engine, position and clock
    python main.py --engine /usr/games/stockfish --moves "e2e4 c7c5" \
        --wtime 60000 --btime 60000 --option "Threads=2"

Requirements:
    - Python 3.8+
    - A UCI engine (e.g. Stockfish) installed or passed with --engine
"""

import sys
from pathlib import Path

# Add the project root to the Python path so we can import our package
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

try:
    from uci_driver.cli import main
except ImportError as e:
    print(f"Error importing uci_driver package: {e}", file=sys.stderr)
    print("\nInstall the package in development mode:", file=sys.stderr)
    print("  pip install -e .", file=sys.stderr)
    sys.exit(1)

if __name__ == "__main__":
    sys.exit(main())
