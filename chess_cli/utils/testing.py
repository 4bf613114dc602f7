"""
Scripted Engine Double

A tiny engine that speaks UCCI or UCI on stdin/stdout without playing
chess. It answers the handshake, records positions and options, and
replies to 'go' with a canned principal variation and best move. Modes make
it misbehave in the ways real engines do, so the session's failure paths
can be tested against a real subprocess.

Modes:
    normal            one PV info line, then bestmove (infinite: on stop)
    split-info        score and PV on separate info lines, a second
                      multi-PV slot, a malformed info line and vendor noise
    crash-on-go       prints one info line, then exits with code 3
    ignore-stop       searches forever, never answers stop
    hang-on-quit      ignores quit and stdin EOF
    garbled-bestmove  answers go with a bare 'bestmove'
    silent            never finishes the handshake
    exit-on-identify  prints one id line, then exits with code 3
    bad-option        mixes malformed id/option lines into the handshake
    stray-bestmove    prints a bestmove right after readyok
    close-stdout-on-go closes stdout on go and keeps running

Usage:
    python -m chess_cli.utils.testing --protocol ucci --mode normal
"""

import argparse
import logging
import os
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Sequence

from chess_cli.engine.config import EngineConfig
from chess_cli.errors import MalformedMessage
from chess_cli.protocol.codec import decode_go, decode_position, decode_setoption
from chess_cli.protocol.messages import Position, SearchParameters, get_dialect
from chess_cli.utils.log import setup_logger

MODES = (
    "normal",
    "split-info",
    "crash-on-go",
    "ignore-stop",
    "hang-on-quit",
    "garbled-bestmove",
    "silent",
    "exit-on-identify",
    "bad-option",
    "stray-bestmove",
    "close-stdout-on-go",
)

CRASH_EXIT_CODE = 3

DEFAULT_PV = ("h2e2", "h9g7", "h0g2")

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class FakeEngine:
    """
    Protocol-only engine double.

    Attributes:
        dialect: Protocol dialect spoken on stdin/stdout
        mode: One of MODES
        position: Last position received
        options: Options set by the GUI
        searching: Flag indicating if a search is in progress
        stop_search: Event set by 'stop'
        search_thread: Background thread answering 'go'

    Methods:
        run: Main command loop
        handle_identify: Respond to 'ucci' / 'uci'
        handle_isready: Respond to 'isready'
        handle_setoption: Record an option
        handle_position: Record the position
        handle_go: Start the canned search
        handle_stop: Stop the canned search
        handle_quit: Exit
    """

    def __init__(
        self,
        protocol: str = "ucci",
        mode: str = "normal",
        pv: Sequence[str] = DEFAULT_PV,
        logger: Optional[logging.Logger] = None,
    ):
        if mode not in MODES:
            raise ValueError(f"unknown mode {mode!r}, expected one of {MODES}")

        self.dialect = get_dialect(protocol)
        self.mode = mode
        self.pv = tuple(pv)

        self.position = Position.startpos()
        self.options = {}

        self.searching = False
        self.stop_search = threading.Event()
        self.search_thread: Optional[threading.Thread] = None

        self.name = "FakeEngine"
        self.version = "1.0"
        self.author = "chess-cli"

        self._output_lock = threading.Lock()
        self.logger = logger or logging.getLogger(__name__)

    def send(self, line: str):
        with self._output_lock:
            print(line)
            sys.stdout.flush()
        self.logger.debug(f"<<< {line}")

    def run(self):
        """
        Main command loop. Runs until 'quit' (or EOF).
        """
        while True:
            try:
                command = input().strip()
            except EOFError:
                self.logger.info("EOF received")
                if self.mode == "hang-on-quit":
                    self._hang()
                break

            if not command:
                continue

            self.logger.debug(f">>> {command}")
            cmd = command.split()[0]

            if cmd in ("ucci", "uci"):
                self.handle_identify()
            elif cmd == "isready":
                self.handle_isready()
            elif cmd == "setoption":
                self.handle_setoption(command)
            elif cmd == "position":
                self.handle_position(command)
            elif cmd == "ucinewgame":
                self.position = Position.startpos()
            elif cmd == "go":
                self.handle_go(command)
            elif cmd == "stop":
                self.handle_stop()
            elif cmd == "quit":
                if self.handle_quit():
                    break
            else:
                # Unknown command - the protocol says to ignore it
                self.logger.debug(f"Unknown command ignored: {command}")

    def handle_identify(self):
        if self.mode == "silent":
            self.logger.info("Silent mode: not answering identify")
            return

        self.send(f"id name {self.name} {self.version}")
        if self.mode == "exit-on-identify":
            os._exit(CRASH_EXIT_CODE)
        self.send(f"id author {self.author}")

        if self.mode == "bad-option":
            self.send("id")
            self.send("option bogus type spin default lots")
            self.send("option name type")

        if self.dialect.keyword_setoption:
            self.send("option name Hash type spin default 16 min 1 max 1024")
            self.send("option name Threads type spin default 1 min 1 max 64")
            self.send("option name Clear Hash type button")
        else:
            self.send("option hashsize type spin min 0 max 1024 default 16")
            self.send("option usebook type check default true")
            self.send("option style type combo var solid var normal var risky default normal")

        self.send(self.dialect.identify_ok)

    def handle_isready(self):
        self.send("readyok")
        if self.mode == "stray-bestmove":
            self.send("bestmove a0a1")

    def handle_setoption(self, command: str):
        try:
            name, value = decode_setoption(command, self.dialect)
        except MalformedMessage as e:
            print(f"# {e}", file=sys.stderr)
            return
        self.options[name] = value
        self.logger.info(f"Option set: {name} = {value}")

    def handle_position(self, command: str):
        try:
            self.position = decode_position(command)
        except MalformedMessage as e:
            print(f"# {e}", file=sys.stderr)

    def handle_go(self, command: str):
        try:
            params = decode_go(command, self.dialect)
        except MalformedMessage as e:
            print(f"# {e}", file=sys.stderr)
            return

        if self.searching:
            self.logger.warning("go while searching ignored")
            return

        self.stop_search.clear()
        self.searching = True
        self.search_thread = threading.Thread(
            target=self._search_thread, args=(params,), daemon=True
        )
        self.search_thread.start()

    def handle_stop(self):
        self.logger.info("Handling: stop")
        if self.mode == "ignore-stop":
            return
        self.stop_search.set()

    def handle_quit(self) -> bool:
        """Returns True if the loop should end."""
        if self.mode == "hang-on-quit":
            self.logger.info("Ignoring quit")
            return False

        self.stop_search.set()
        if self.search_thread and self.search_thread.is_alive():
            self.search_thread.join(timeout=1.0)
        if self.dialect.quit_ack:
            self.send(self.dialect.quit_ack)
        return True

    def _score(self, value: int) -> str:
        if self.dialect.keyword_setoption:
            return f"score cp {value}"
        return f"score {value}"

    def _search_thread(self, params: SearchParameters):
        depth = params.depth or 8
        pv = " ".join(self.pv)

        try:
            if self.mode == "crash-on-go":
                self.send(f"info depth 1 {self._score(10)} pv {self.pv[0]}")
                sys.stdout.flush()
                time.sleep(0.05)
                # Skip interpreter cleanup like a real crash would.
                os._exit(CRASH_EXIT_CODE)

            if self.mode == "close-stdout-on-go":
                sys.stdout.flush()
                os.close(sys.stdout.fileno())
                self._hang()

            if self.mode == "garbled-bestmove":
                self.send("bestmove")
                return

            if self.mode == "split-info":
                self.send("copyprotection checking")
                self.send(f"info depth {depth} {self._score(35)} nodes 1200")
                self.send(f"info depth {depth} time 15 pv {pv}")
                self.send(f"info multipv 2 depth {depth} {self._score(-20)} pv b2e2 b9c7")
                self.send("info depth x nodes y")
                self.send("info string done")
            else:
                self.send(f"info depth {depth} {self._score(25)} nodes 4096 nps 200000 time 20 pv {pv}")

            if self.mode == "ignore-stop" or params.infinite:
                # Wait for 'stop' (never set in ignore-stop mode)
                while not self.stop_search.wait(0.05):
                    pass

            self.searching = False
            self.send(f"bestmove {self.pv[0]} ponder {self.pv[1]}")
        finally:
            self.searching = False

    def _hang(self):
        while True:
            time.sleep(1.0)


def fake_engine_config(
    mode: str = "normal",
    protocol: str = "ucci",
    name: Optional[str] = None,
    **overrides,
) -> EngineConfig:
    """
    Build an EngineConfig that launches FakeEngine in a Python subprocess.

    Args:
        mode: FakeEngine mode
        protocol: 'ucci' or 'uci'
        name: Engine name (default: 'fake-<mode>')
        **overrides: Other EngineConfig fields

    Returns:
        EngineConfig ready for EngineSession.launch / SessionRegistry.create
    """
    settings = dict(
        name=name or f"fake-{mode}",
        path=sys.executable,
        protocol=protocol,
        working_directory=str(PROJECT_ROOT),
        args=("-m", "chess_cli.utils.testing", "--protocol", protocol, "--mode", mode),
        handshake_timeout=10.0,
        grace_timeout=2.0,
    )
    settings.update(overrides)
    return EngineConfig(**settings)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Scripted UCCI/UCI engine double")
    parser.add_argument("--protocol", choices=("ucci", "uci"), default="ucci")
    parser.add_argument("--mode", choices=MODES, default="normal")
    parser.add_argument("--log-file", default=None, help="Write a debug log here")
    args = parser.parse_args(argv)

    logger = None
    if args.log_file:
        logger = setup_logger(debug=True, log_file=args.log_file, name="fake_engine")

    FakeEngine(protocol=args.protocol, mode=args.mode, logger=logger).run()


if __name__ == "__main__":
    main()
