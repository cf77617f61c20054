"""Tests for perpsim.env_parse.

Covers:
- parse_bool: truthy/falsey matrix, unknown values (strict + non-strict).
- to_bool: the same sets applied to config-file values.
- parse_int: valid ints, invalid strings, min bound, unset.
- parse_address / parse_private_key: format validation, 0x normalisation.
"""

from __future__ import annotations

import logging

import pytest

from perpsim.env_parse import (
    ConfigError,
    parse_address,
    parse_bool,
    parse_int,
    parse_private_key,
    parse_str,
    to_bool,
)

VALID_ADDRESS = "0x9C216D1Ab3e0407b3d6F1d5e9EfFe6d01C326ab7"
VALID_KEY = "ab" * 32


class TestParseBool:
    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", "yes", "On", " on "])
    def test_truthy_values(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("TEST_BOOL", raw)
        assert parse_bool("TEST_BOOL") is True

    @pytest.mark.parametrize("raw", ["0", "false", "No", "OFF", ""])
    def test_falsey_values(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("TEST_BOOL", raw)
        assert parse_bool("TEST_BOOL", default=True) is False

    def test_unset_returns_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_BOOL", raising=False)
        assert parse_bool("TEST_BOOL", default=True) is True

    def test_strict_unknown_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_BOOL", "maybe")
        with pytest.raises(ConfigError, match="invalid boolean value"):
            parse_bool("TEST_BOOL")

    def test_nonstrict_unknown_warns_and_defaults(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("TEST_BOOL", "garbage")
        with caplog.at_level(logging.WARNING, logger="perpsim.env_parse"):
            assert parse_bool("TEST_BOOL", default=True, strict=False) is True
        assert "garbage" in caplog.text


class TestToBool:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [(True, True), (False, False), ("false", False), ("Yes", True), (0, False), (1, True)],
    )
    def test_coerces(self, raw: object, expected: bool) -> None:
        assert to_bool(raw, "post_only") is expected

    def test_rejects_unknown(self) -> None:
        with pytest.raises(ConfigError, match="post_only"):
            to_bool("maybe", "post_only")


class TestParseInt:
    def test_valid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", " 42 ")
        assert parse_int("TEST_INT", 7) == 42

    def test_empty_returns_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "   ")
        assert parse_int("TEST_INT", 7) == 7

    def test_invalid_strict_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "12abc")
        with pytest.raises(ConfigError, match="invalid integer"):
            parse_int("TEST_INT", 7)

    def test_invalid_nonstrict_returns_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "12abc")
        assert parse_int("TEST_INT", 7, strict=False) == 7

    def test_below_min_strict_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "10")
        with pytest.raises(ConfigError, match="below minimum"):
            parse_int("TEST_INT", 5000, min_value=1000)

    def test_below_min_nonstrict_clamps(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_INT", "10")
        assert parse_int("TEST_INT", 5000, min_value=1000, strict=False) == 1000


class TestParseStr:
    def test_stripped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_STR", "  http://node  ")
        assert parse_str("TEST_STR") == "http://node"

    def test_blank_returns_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_STR", "  ")
        assert parse_str("TEST_STR", "fallback") == "fallback"


class TestParseAddress:
    def test_valid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_ADDR", VALID_ADDRESS)
        assert parse_address("TEST_ADDR") == VALID_ADDRESS

    @pytest.mark.parametrize(
        "raw", ["0x1234", VALID_ADDRESS[2:], "0xZZ" + "0" * 38]
    )
    def test_malformed_always_raises(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("TEST_ADDR", raw)
        with pytest.raises(ConfigError, match="invalid address"):
            parse_address("TEST_ADDR")

    def test_unset_returns_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TEST_ADDR", raising=False)
        assert parse_address("TEST_ADDR", VALID_ADDRESS) == VALID_ADDRESS


class TestParsePrivateKey:
    def test_adds_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_KEY", VALID_KEY)
        assert parse_private_key("TEST_KEY") == "0x" + VALID_KEY

    def test_keeps_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_KEY", "0x" + VALID_KEY)
        assert parse_private_key("TEST_KEY") == "0x" + VALID_KEY

    def test_malformed_does_not_echo_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_KEY", "deadbeef")
        with pytest.raises(ConfigError) as exc_info:
            parse_private_key("TEST_KEY")
        assert "deadbeef" not in str(exc_info.value)
