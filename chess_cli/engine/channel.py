"""
Line Channel

Wraps one engine's stdin/stdout as two independent line streams.

Threading:
    - Writer thread: drains an unbounded outbound queue, one whole line
      per write followed by a flush
    - Reader thread: reads stdout line by line into an inbound queue
    - Communication: queue.Queue on both sides, so a slow engine never
      blocks a sender and a slow consumer never blocks the pipe reader

Order is preserved in both directions. Lines never contain line breaks,
so a partial line can never be interleaved with another.
"""

import logging
import queue
import threading
from typing import Iterator, TextIO

from chess_cli.errors import ChannelClosed
from chess_cli.protocol.codec import check_text

logger = logging.getLogger(__name__)

_EOF = object()
_CLOSE = object()


class LineChannel:
    """
    Duplex line channel over a pair of text streams.

    Attributes:
        name: Label used in thread names and log lines
    """

    def __init__(self, writer: TextIO, reader: TextIO, name: str = "engine"):
        """
        Create the channel. Threads are started by start().

        Args:
            writer: Stream connected to the engine's stdin
            reader: Stream connected to the engine's stdout
            name: Label for logging
        """
        self.name = name
        self._writer = writer
        self._reader = reader

        self._outbound: "queue.Queue" = queue.Queue()
        self._inbound: "queue.Queue" = queue.Queue()

        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._eof = threading.Event()
        self._started = False
        self._consumed = False

        self._writer_thread = threading.Thread(
            target=self._write_loop, name=f"{name}-writer", daemon=True
        )
        self._reader_thread = threading.Thread(
            target=self._read_loop, name=f"{name}-reader", daemon=True
        )

    def start(self) -> "LineChannel":
        with self._lock:
            if not self._started:
                self._started = True
                self._writer_thread.start()
                self._reader_thread.start()
        return self

    @property
    def closed(self) -> bool:
        """True once no more lines can be sent."""
        return self._closed.is_set()

    @property
    def at_eof(self) -> bool:
        """True once the engine's stdout has been closed."""
        return self._eof.is_set()

    def send(self, line: str):
        """
        Queue one line for the engine. Never blocks.

        Raises:
            InvalidCommandError: If the line contains a line break
            ChannelClosed: If the channel is closed
        """
        check_text(line, "command")
        with self._lock:
            if self._closed.is_set():
                raise ChannelClosed(f"{self.name}: channel is closed, cannot send {line!r}")
            logger.debug(f"[{self.name}] >>> {line}")
            self._outbound.put(line)

    def lines(self) -> Iterator[str]:
        """
        Return the inbound line sequence, ending when the engine's stdout closes.

        The sequence can be consumed once; recreate the channel to restart.

        Raises:
            RuntimeError: If lines() was already called
        """
        with self._lock:
            if self._consumed:
                raise RuntimeError(f"{self.name}: inbound lines already consumed")
            self._consumed = True
        return self._iter_lines()

    def _iter_lines(self) -> Iterator[str]:
        while True:
            line = self._inbound.get()
            if line is _EOF:
                return
            logger.debug(f"[{self.name}] <<< {line}")
            yield line

    def close(self, flush: bool = True, timeout: float = 1.0):
        """
        Stop accepting lines and close the engine's stdin. Idempotent.

        Args:
            flush: Write lines already queued before closing
            timeout: Seconds to wait for the writer thread
        """
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            if not flush:
                self._drain_outbound()
            self._outbound.put(_CLOSE)

        if self._started and threading.current_thread() is not self._writer_thread:
            self._writer_thread.join(timeout=timeout)
            if self._writer_thread.is_alive():
                logger.warning(f"[{self.name}] writer did not finish within {timeout}s")
        elif not self._started:
            self._close_writer()
            self._close_reader()
            self._eof.set()
            self._inbound.put(_EOF)

    def _drain_outbound(self):
        while True:
            try:
                self._outbound.get_nowait()
            except queue.Empty:
                return

    def _write_loop(self):
        try:
            while True:
                line = self._outbound.get()
                if line is _CLOSE:
                    break
                try:
                    self._writer.write(line + "\n")
                    self._writer.flush()
                except (OSError, ValueError) as e:
                    # Broken pipe or stream closed under us: the engine is gone.
                    logger.debug(f"[{self.name}] write failed: {e}")
                    with self._lock:
                        self._closed.set()
                    break
        finally:
            self._close_writer()

    def _close_writer(self):
        try:
            self._writer.close()
        except (OSError, ValueError) as e:
            logger.debug(f"[{self.name}] closing stdin failed: {e}")

    def _close_reader(self):
        try:
            self._reader.close()
        except (OSError, ValueError) as e:
            logger.debug(f"[{self.name}] closing stdout failed: {e}")

    def _read_loop(self):
        try:
            for raw in self._reader:
                self._inbound.put(raw.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug(f"[{self.name}] read failed: {e}")
        finally:
            self._close_reader()
            self._eof.set()
            self._inbound.put(_EOF)
