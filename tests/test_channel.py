"""
Unit Tests for the Line Channel

Tests for the threaded duplex line streams, focusing on:
    - Outbound ordering and framing
    - Inbound line splitting and end of stream
    - Closing: idempotence, sends after close, broken pipes
"""

import io
import threading
import time

import pytest

from chess_cli.engine.channel import LineChannel
from chess_cli.errors import ChannelClosed, InvalidCommandError


class RecordingWriter:
    """Stand-in for an engine's stdin that records what was written."""

    def __init__(self, fail=False):
        self.chunks = []
        self.flushes = 0
        self.closed = False
        self.fail = fail
        self._lock = threading.Lock()

    def write(self, text):
        if self.fail:
            raise BrokenPipeError("engine is gone")
        with self._lock:
            self.chunks.append(text)

    def flush(self):
        self.flushes += 1

    def close(self):
        self.closed = True

    @property
    def text(self):
        with self._lock:
            return "".join(self.chunks)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def writer():
    return RecordingWriter()


class TestOutbound:
    """Tests for sending lines."""

    def test_lines_written_in_order(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()

        for line in ("ucci", "isready", "position startpos", "go depth 3"):
            channel.send(line)
        channel.close()

        assert writer.text == "ucci\nisready\nposition startpos\ngo depth 3\n"
        assert writer.closed, "Closing the channel should close the engine's stdin"

    def test_each_line_flushed(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()

        channel.send("isready")
        channel.send("stop")
        channel.close()

        assert writer.flushes >= 2, "Every line should be flushed"

    def test_line_break_rejected_before_write(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()

        with pytest.raises(InvalidCommandError):
            channel.send("go depth 3\nquit")
        channel.close()

        assert writer.text == "", "Nothing of a rejected line may be written"

    def test_send_after_close(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()
        channel.close()

        with pytest.raises(ChannelClosed):
            channel.send("isready")

    def test_close_is_idempotent(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()

        channel.close()
        channel.close()

        assert channel.closed

    def test_close_without_flush_drops_queued_lines(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test")
        channel.send("go infinite")

        channel.close(flush=False)

        assert writer.text == ""
        assert writer.closed

    def test_close_before_start_closes_both_pipes(self, writer):
        reader = io.StringIO("readyok\n")
        channel = LineChannel(writer, reader, "test")

        channel.close()

        assert writer.closed, "Engine stdin should be closed"
        assert reader.closed, "Engine stdout should be closed even though nothing read it"
        assert channel.at_eof
        assert list(channel.lines()) == []

    def test_broken_pipe_closes_channel(self):
        writer = RecordingWriter(fail=True)
        channel = LineChannel(writer, io.StringIO(""), "test").start()

        channel.send("isready")

        assert wait_until(lambda: channel.closed), "A failed write should close the channel"
        with pytest.raises(ChannelClosed):
            channel.send("stop")


class TestInbound:
    """Tests for reading lines."""

    def test_lines_split_and_end_at_eof(self, writer):
        reader = io.StringIO("id name ElephantEye\r\noption usebook type check default true\nucciok\n")
        channel = LineChannel(writer, reader, "test").start()

        lines = list(channel.lines())

        assert lines == [
            "id name ElephantEye",
            "option usebook type check default true",
            "ucciok",
        ]
        assert channel.at_eof

    def test_empty_lines_preserved(self, writer):
        channel = LineChannel(writer, io.StringIO("\nreadyok\n"), "test").start()

        assert list(channel.lines()) == ["", "readyok"]

    def test_lines_consumed_once(self, writer):
        channel = LineChannel(writer, io.StringIO(""), "test").start()
        channel.lines()

        with pytest.raises(RuntimeError):
            channel.lines()
