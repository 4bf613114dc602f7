#!/usr/bin/env python3
"""
CLI tool for checking that an engine binary works with chess-cli.

Starts the engine, runs the handshake, prints the advertised options, runs
one search and prints every info line and the best move.

Usage:
    python tools/probe_engine.py /opt/pikafish/pikafish --protocol uci \\
        --movetime 2000 --moves h2e2 h9g7

    python tools/probe_engine.py ./eleeye --cwd ./eleeye-data --depth 10 \\
        --option hashsize=64
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chess_cli.engine import (
    BestMoveFound,
    EngineConfig,
    OptionsAdvertised,
    SearchInfoUpdated,
    SessionRegistry,
    StartSearch,
    Stop,
    Terminated,
)
from chess_cli.errors import EngineError
from chess_cli.protocol import Position, SearchParameters


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_options(pairs):
    """Turn ['Threads=4', 'Clear Hash'] into {'Threads': '4', 'Clear Hash': None}."""
    options = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        options[name] = value if sep else None
    return options


def format_info(info) -> str:
    parts = [f"[{info.multipv}]"]
    if info.depth is not None:
        parts.append(f"depth {info.depth}")
    if info.score is not None:
        if info.is_mate:
            parts.append(f"mate {info.score.mate()}")
        else:
            parts.append(f"cp {info.score.score()}")
    if info.nodes is not None:
        parts.append(f"nodes {info.nodes}")
    if info.pv:
        parts.append("pv " + " ".join(info.pv))
    return "  ".join(parts)


def probe(args) -> int:
    """Run the probe. Returns the process exit code."""
    try:
        params = SearchParameters(
            depth=args.depth,
            movetime=args.movetime,
            nodes=args.nodes,
            infinite=args.infinite,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    if args.fen:
        position = Position.from_fen(args.fen, args.moves)
    else:
        position = Position.startpos(args.moves)

    config = EngineConfig(
        name=Path(args.engine).stem,
        path=args.engine,
        protocol=args.protocol,
        working_directory=args.cwd,
        options=parse_options(args.option),
        handshake_timeout=args.timeout,
        grace_timeout=args.grace,
        stderr="log" if args.verbose else "discard",
    )

    with SessionRegistry() as registry:
        try:
            handle = registry.create(config)
        except EngineError as e:
            print(f"Error: could not start engine: {e}")
            return 1

        registry.command(handle, StartSearch(position, params))

        for source, event in registry.events(timeout=args.wait):
            if isinstance(event, OptionsAdvertised):
                print(f"{source}: {event.engine_id.get('name', '?')} by {event.engine_id.get('author', '?')}")
                for option in event.options.values():
                    print(f"  option {option.name} ({option.type}) default={option.default!r}")
            elif isinstance(event, SearchInfoUpdated):
                print(f"{source}: {format_info(event.info)}")
            elif isinstance(event, BestMoveFound):
                best = event.best_move
                ponder = f" (ponder {best.ponder})" if best.ponder else ""
                print(f"{source}: bestmove {best.move}{ponder}")
                return 0
            elif isinstance(event, Terminated):
                print(f"{source}: engine terminated: {event.reason}")
                return 1

        print(f"No bestmove within {args.wait}s, stopping search")
        best = registry.command(handle, Stop(wait=True))
        if best is None:
            return 1
        print(f"{handle}: bestmove {best.move}")
        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Start a Chinese-chess engine and run one search",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("engine", help="Path to the engine executable")
    parser.add_argument(
        "--protocol",
        choices=("ucci", "uci"),
        default="ucci",
        help="Protocol dialect spoken by the engine",
    )
    parser.add_argument("--cwd", default=None, help="Engine working directory")
    parser.add_argument(
        "--option",
        action="append",
        help="Option override NAME=VALUE (repeatable; NAME alone presses a button)",
    )

    limits = parser.add_mutually_exclusive_group()
    limits.add_argument("--depth", type=int, default=None, help="Search depth")
    limits.add_argument("--movetime", type=int, default=None, help="Milliseconds per move")
    limits.add_argument("--nodes", type=int, default=None, help="Node limit")
    limits.add_argument("--infinite", action="store_true", help="Search until --wait expires")

    parser.add_argument("--fen", default=None, help="Start from this FEN instead of startpos")
    parser.add_argument("--moves", nargs="*", default=[], help="Moves played from the position")
    parser.add_argument("--timeout", type=float, default=10.0, help="Handshake timeout (s)")
    parser.add_argument("--grace", type=float, default=2.0, help="Quit/stop grace timeout (s)")
    parser.add_argument("--wait", type=float, default=30.0, help="Max seconds to wait for events")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()
    setup_logging(args.verbose)
    sys.exit(probe(args))


if __name__ == "__main__":
    main()
