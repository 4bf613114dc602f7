"""
Unit Tests for Engine Configuration

Tests for EngineConfig, focusing on:
    - Building configs from parsed engines.toml tables
    - Validation of protocol, timeouts, search defaults and stderr mode
"""

import pytest

from chess_cli.engine import EngineConfig
from chess_cli.protocol import UCCI, UCI, SearchParameters


class TestEngineConfig:
    """Tests for EngineConfig construction and validation."""

    def test_defaults(self):
        config = EngineConfig(name="eleeye", path="./eleeye")

        assert config.protocol == "ucci"
        assert config.dialect is UCCI
        assert config.options == {}
        assert config.default_search == SearchParameters()
        assert config.stderr == "discard"

    def test_protocol_is_case_insensitive(self):
        config = EngineConfig(name="pikafish", path="pikafish", protocol="UCI")

        assert config.protocol == "uci"
        assert config.dialect is UCI

    def test_unknown_protocol(self):
        with pytest.raises(ValueError):
            EngineConfig(name="x", path="x", protocol="cecp")

    def test_default_search_from_mapping(self):
        config = EngineConfig(name="x", path="x", default_search={"movetime": 3000})

        assert config.default_search == SearchParameters(movetime=3000)

    def test_conflicting_default_search(self):
        with pytest.raises(ValueError):
            EngineConfig(name="x", path="x", default_search={"depth": 8, "nodes": 1000})

    def test_args_become_strings(self):
        config = EngineConfig(name="x", path="x", args=["--threads", 4])
        assert config.args == ("--threads", "4")

    @pytest.mark.parametrize(
        "field, value",
        [("handshake_timeout", 0), ("grace_timeout", -1), ("stderr", "inherit")],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            EngineConfig(name="x", path="x", **{field: value})

    def test_empty_path(self):
        with pytest.raises(ValueError):
            EngineConfig(name="x", path="")


class TestFromDict:
    """Tests for EngineConfig.from_dict."""

    def test_pikafish_table(self):
        table = {
            "name": "pikafish",
            "protocol": "uci",
            "path": "$HOME/engines/pikafish/pikafish",
            "options": {"Threads": 4, "Hash": 256},
        }

        config = EngineConfig.from_dict(table)

        assert config.name == "pikafish"
        assert config.path == "$HOME/engines/pikafish/pikafish", "Paths are expanded at spawn time"
        assert config.options == {"Threads": 4, "Hash": 256}

    def test_name_from_table_key(self):
        config = EngineConfig.from_dict({"path": "./eleeye"}, name="eleeye")
        assert config.name == "eleeye"

    def test_missing_name(self):
        with pytest.raises(ValueError):
            EngineConfig.from_dict({"path": "./eleeye"})

    def test_missing_path(self):
        with pytest.raises(ValueError):
            EngineConfig.from_dict({"name": "eleeye"})

    def test_unknown_keys(self):
        with pytest.raises(ValueError) as exc_info:
            EngineConfig.from_dict({"name": "x", "path": "x", "ponder": True})
        assert "ponder" in str(exc_info.value)

    def test_table_not_modified(self):
        table = {"path": "./eleeye"}
        EngineConfig.from_dict(table, name="eleeye")
        assert table == {"path": "./eleeye"}
