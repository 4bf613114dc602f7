"""
Unit Tests for the Protocol Codec

Tests for the wire format shared by UCCI and UCI engines, focusing on:
    - Command encoding: position, go, setoption in both dialects
    - Line-break validation: nothing that would split a line is encoded
    - Line decoding: id, option, info, bestmove, sentinels, vendor noise
    - Reference decoders: what an engine reads back from our commands
    - Value types: SearchParameters validation, SearchInfo merging
"""

import chess.engine
import pytest

from chess_cli.errors import InvalidCommandError, MalformedMessage
from chess_cli.protocol import (
    UCCI,
    UCI,
    BestMove,
    BestMoveLine,
    Bye,
    HandshakeOk,
    IdLine,
    InfoLine,
    OptionLine,
    Position,
    ReadyOk,
    SearchInfo,
    SearchParameters,
    Unrecognized,
    decode_go,
    decode_line,
    decode_position,
    decode_setoption,
    encode_go,
    encode_identify,
    encode_newgame,
    encode_position,
    encode_setoption,
    get_dialect,
)

XIANGQI_START_FEN = "rnbakabnr/9/1c5c1/p1p1p1p1p/9/9/P1P1P1P1P/1C5C1/9/RNBAKABNR w - - 0 1"


class TestDialects:
    """Tests for the dialect table."""

    def test_identify_commands(self):
        assert encode_identify(UCCI) == "ucci"
        assert encode_identify(UCI) == "uci"

    def test_newgame_only_in_uci(self):
        assert encode_newgame(UCI) == "ucinewgame"
        assert encode_newgame(UCCI) is None

    def test_lookup_is_case_insensitive(self):
        assert get_dialect("UCCI") is UCCI

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            get_dialect("xboard")


class TestPositionEncoding:
    """Tests for 'position' commands."""

    def test_startpos(self):
        assert encode_position(Position.startpos()) == "position startpos"

    def test_startpos_with_moves(self):
        position = Position.startpos(["h2e2", "h9g7"])
        assert encode_position(position) == "position startpos moves h2e2 h9g7"

    def test_fen(self):
        position = Position.from_fen(XIANGQI_START_FEN)
        assert encode_position(position) == f"position fen {XIANGQI_START_FEN}"

    def test_fen_with_moves_round_trip(self):
        """The engine-side decoder reads back the same position."""
        position = Position.from_fen(XIANGQI_START_FEN, ["b2e2"])

        decoded = decode_position(encode_position(position))

        assert decoded == position

    def test_after_returns_new_value(self):
        start = Position.startpos()
        later = start.after("h2e2", "h9g7")

        assert start.moves == (), "Original position must not change"
        assert later.moves == ("h2e2", "h9g7")

    def test_bare_string_moves_rejected(self):
        """A single string must not be split into one-character moves."""
        with pytest.raises(TypeError):
            Position.startpos("h2e2")
        with pytest.raises(TypeError):
            Position.from_fen(XIANGQI_START_FEN, "b2e2")

    def test_moves_from_generator(self):
        position = Position.startpos(move for move in ("h2e2", "h9g7"))
        assert position.moves == ("h2e2", "h9g7")

    def test_move_with_line_break_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_position(Position.startpos(["h2e2\nquit"]))

    def test_move_with_space_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_position(Position.startpos(["h2e2 h9g7"]))

    def test_fen_with_carriage_return_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_position(Position.from_fen(XIANGQI_START_FEN + "\r"))

    def test_fen_with_unicode_line_separator_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_position(Position.from_fen("rnbakabnr\u2028quit"))

    def test_empty_fen_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_position(Position.from_fen("   "))


class TestGoEncoding:
    """Tests for 'go' commands and their reference decoder."""

    def test_depth_round_trip(self):
        """{depth: 12} survives encoding and decoding."""
        line = encode_go(SearchParameters(depth=12))

        assert line == "go depth 12"
        assert decode_go(line).depth == 12

    def test_depth_round_trip_ucci(self):
        line = encode_go(SearchParameters(depth=12), UCCI)
        assert decode_go(line, UCCI).depth == 12

    def test_movetime_uci(self):
        assert encode_go(SearchParameters(movetime=1000), UCI) == "go movetime 1000"

    def test_movetime_ucci(self):
        line = encode_go(SearchParameters(movetime=1000), UCCI)

        assert line == "go time 1000 movestogo 1"
        assert decode_go(line, UCCI) == SearchParameters(movetime=1000)

    def test_nodes(self):
        assert encode_go(SearchParameters(nodes=50000)) == "go nodes 50000"

    def test_infinite(self):
        line = encode_go(SearchParameters(infinite=True))

        assert line == "go infinite"
        assert decode_go(line).infinite

    def test_no_limit(self):
        assert encode_go(SearchParameters()) == "go"
        assert decode_go("go").strategy is None

    def test_decode_rejects_non_numeric(self):
        with pytest.raises(MalformedMessage):
            decode_go("go depth deep")

    def test_decode_rejects_clock_time_in_uci(self):
        with pytest.raises(MalformedMessage):
            decode_go("go time 1000", UCI)


class TestSearchParameters:
    """Tests for search limit validation."""

    def test_single_strategy(self):
        assert SearchParameters(depth=3).strategy == "depth"
        assert SearchParameters(infinite=True).strategy == "infinite"

    def test_two_strategies_rejected(self):
        with pytest.raises(ValueError):
            SearchParameters(depth=5, movetime=100)

    def test_infinite_with_limit_rejected(self):
        with pytest.raises(ValueError):
            SearchParameters(nodes=100, infinite=True)

    @pytest.mark.parametrize("value", [0, -1, True, 2.5])
    def test_bad_values_rejected(self, value):
        with pytest.raises(ValueError):
            SearchParameters(depth=value)


class TestSetOptionEncoding:
    """Tests for 'setoption' commands."""

    def test_uci_value(self):
        line = encode_setoption("Threads", 4, UCI)

        assert line == "setoption name Threads value 4"
        assert decode_setoption(line, UCI) == ("Threads", "4")

    def test_uci_button(self):
        line = encode_setoption("Clear Hash", None, UCI)

        assert line == "setoption name Clear Hash"
        assert decode_setoption(line, UCI) == ("Clear Hash", None)

    def test_ucci_value(self):
        line = encode_setoption("hashsize", 64, UCCI)

        assert line == "setoption hashsize 64"
        assert decode_setoption(line, UCCI) == ("hashsize", "64")

    def test_boolean_value(self):
        assert encode_setoption("usebook", True, UCCI) == "setoption usebook true"
        assert encode_setoption("Ponder", False, UCI) == "setoption name Ponder value false"

    def test_ucci_name_must_be_one_token(self):
        with pytest.raises(InvalidCommandError):
            encode_setoption("hash size", 64, UCCI)

    def test_value_with_line_break_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_setoption("Threads", "1\nquit", UCI)

    def test_name_with_line_break_rejected(self):
        with pytest.raises(InvalidCommandError):
            encode_setoption("Threads\r", 1, UCI)


class TestHandshakeDecoding:
    """Tests for id, option and sentinel lines."""

    def test_sentinels(self):
        assert decode_line("ucciok") == HandshakeOk("ucciok")
        assert decode_line("uciok") == HandshakeOk("uciok")
        assert decode_line("readyok") == ReadyOk()
        assert decode_line("bye") == Bye()

    def test_id_line(self):
        assert decode_line("id name ElephantEye 3.3") == IdLine("name", "ElephantEye 3.3")

    def test_ucci_spin_option(self):
        message = decode_line("option hashsize type spin min 0 max 1024 default 16")

        assert isinstance(message, OptionLine)
        option = message.option
        assert option.name == "hashsize"
        assert option.type == "spin"
        assert option.default == 16
        assert option.min == 0
        assert option.max == 1024

    def test_uci_option_with_spaces_in_name(self):
        option = decode_line("option name Clear Hash type button").option

        assert option.name == "Clear Hash"
        assert option.type == "button"
        assert option.default is None

    def test_combo_option(self):
        option = decode_line(
            "option style type combo var solid var normal var risky default normal"
        ).option

        assert option.var == ["solid", "normal", "risky"]
        assert option.default == "normal"

    def test_check_option(self):
        option = decode_line("option usebook type check default true").option
        assert option.default is True

    def test_empty_string_default(self):
        option = decode_line("option name EvalFile type string default <empty>").option
        assert option.default == ""

    def test_option_is_python_chess_option(self):
        option = decode_line("option name Hash type spin default 16 min 1 max 1024").option
        assert isinstance(option, chess.engine.Option)

    def test_malformed_spin_option(self):
        with pytest.raises(MalformedMessage) as exc_info:
            decode_line("option name Hash type spin default lots")
        assert exc_info.value.kind == "option"

    def test_option_without_type(self):
        with pytest.raises(MalformedMessage):
            decode_line("option name Hash default 16")


class TestInfoDecoding:
    """Tests for 'info' lines."""

    def test_ucci_bare_score(self):
        message = decode_line("info depth 6 score 35 pv h2e2 h9g7")

        assert isinstance(message, InfoLine)
        info = message.info
        assert info.depth == 6
        assert info.score.score() == 35
        assert info.pv == ("h2e2", "h9g7")

    def test_uci_full_line(self):
        info = decode_line(
            "info depth 20 seldepth 28 multipv 2 score cp -15 upperbound "
            "nodes 1000 nps 500 hashfull 3 tbhits 0 time 10 currmove b2e2 pv b2e2 b9c7"
        ).info

        assert info.depth == 20
        assert info.seldepth == 28
        assert info.multipv == 2
        assert info.score.score() == -15
        assert info.score_bound == "upperbound"
        assert info.nodes == 1000
        assert info.nps == 500
        assert info.hashfull == 3
        assert info.time == 10
        assert info.currmove == "b2e2"
        assert info.pv == ("b2e2", "b9c7")

    def test_mate_score(self):
        info = decode_line("info depth 9 score mate -3 pv h2h9").info

        assert info.is_mate
        assert info.score.mate() == -3
        assert info.to_centipawns() == -10000

    def test_info_string(self):
        message = decode_line("info string book move found")

        assert message.info is None
        assert message.string == "book move found"

    def test_info_without_search_fields(self):
        assert decode_line("info").info is None

    def test_non_numeric_depth(self):
        with pytest.raises(MalformedMessage) as exc_info:
            decode_line("info depth x")
        assert exc_info.value.kind == "info"

    def test_score_without_value(self):
        with pytest.raises(MalformedMessage):
            decode_line("info depth 3 score")


class TestBestMoveDecoding:
    """Tests for 'bestmove' / 'nobestmove' lines."""

    def test_move_and_ponder(self):
        message = decode_line("bestmove h2e2 ponder h9g7")

        assert isinstance(message, BestMoveLine)
        assert message.best_move == BestMove("h2e2", ponder="h9g7")

    def test_ucci_draw_offer(self):
        best = decode_line("bestmove h2e2 draw").best_move

        assert best.move == "h2e2"
        assert best.draw_offer
        assert not best.resign

    def test_ucci_resign(self):
        assert decode_line("bestmove a0a1 resign").best_move.resign

    def test_uci_none(self):
        assert decode_line("bestmove (none)").best_move.move is None

    def test_ucci_nobestmove(self):
        assert decode_line("nobestmove").best_move == BestMove(None)

    def test_missing_move(self):
        with pytest.raises(MalformedMessage) as exc_info:
            decode_line("bestmove")
        assert exc_info.value.kind == "bestmove"

    def test_ponder_without_move(self):
        with pytest.raises(MalformedMessage):
            decode_line("bestmove h2e2 ponder")


class TestUnrecognized:
    """Vendor lines are returned, never raised."""

    @pytest.mark.parametrize("line", ["copyprotection ok", "Pikafish 2024 by the Pikafish developers", ""])
    def test_unknown_first_token(self, line):
        assert decode_line(line) == Unrecognized(line)


class TestSearchInfo:
    """Tests for field-wise merging and score helpers."""

    def test_merge_keeps_fields_from_both_lines(self):
        score_line = SearchInfo(depth=5, score=chess.engine.Cp(20))
        pv_line = SearchInfo(depth=5, pv=("h2e2",))

        merged = score_line.merge(pv_line)

        assert merged.score.score() == 20
        assert merged.pv == ("h2e2",)

    def test_merge_newer_fields_win(self):
        old = SearchInfo(depth=4, nodes=100)
        merged = old.merge(SearchInfo(depth=5))

        assert merged.depth == 5
        assert merged.nodes == 100

    def test_new_score_clears_old_bound(self):
        old = SearchInfo(score=chess.engine.Cp(50), score_bound="lowerbound")
        merged = old.merge(SearchInfo(score=chess.engine.Cp(40)))

        assert merged.score_bound is None

    def test_centipawn_clamping(self):
        info = SearchInfo(score=chess.engine.Cp(15000))

        assert info.to_centipawns(clamp=5000) == 5000
        assert not info.is_mate

    def test_no_score(self):
        assert SearchInfo().to_centipawns() is None
