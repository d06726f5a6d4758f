"""Tests for per-connection format negotiation."""

import pytest

from voxrelay.core.events import Codec, FramingStyle, OperatingMode, SessionConfig
from voxrelay.negotiator import negotiate


class TestNegotiate:

    def test_defaults(self):
        config = negotiate({})
        assert config == SessionConfig()
        assert config.framing_style == FramingStyle.JSON
        assert config.caller_sample_rate == 8000
        assert config.assistant_sample_rate == 16000
        assert config.caller_codec == Codec.PCM16
        assert config.mode == OperatingMode.BRIDGE

    def test_none_params(self):
        assert negotiate(None) == SessionConfig()

    def test_all_parameters(self):
        config = negotiate({
            "fmt": "bin",
            "mode": "echo",
            "vapiSr": "24000",
            "frejunSr": "16000",
            "frejunFmt": "mulaw",
        })
        assert config.framing_style == FramingStyle.BINARY
        assert config.mode == OperatingMode.ECHO
        assert config.assistant_sample_rate == 24000
        assert config.caller_sample_rate == 16000
        assert config.caller_codec == Codec.MULAW

    @pytest.mark.parametrize("raw,expected", [
        ("passiveListen", OperatingMode.PASSIVE_LISTEN),
        ("passive", OperatingMode.PASSIVE_LISTEN),
        ("PASSIVE_LISTEN", OperatingMode.PASSIVE_LISTEN),
        ("TONE", OperatingMode.TONE),
        ("Bridge", OperatingMode.BRIDGE),
    ])
    def test_mode_spellings(self, raw, expected):
        assert negotiate({"mode": raw}).mode == expected

    @pytest.mark.parametrize("raw,expected", [
        ("binary", FramingStyle.BINARY),
        ("JSON", FramingStyle.JSON),
    ])
    def test_framing_spellings(self, raw, expected):
        assert negotiate({"fmt": raw}).framing_style == expected

    @pytest.mark.parametrize("raw,expected", [
        ("ulaw", Codec.MULAW),
        ("pcm16", Codec.PCM16),
        ("linear16", Codec.PCM16),
    ])
    def test_codec_spellings(self, raw, expected):
        assert negotiate({"frejunFmt": raw}).caller_codec == expected

    @pytest.mark.parametrize("params", [
        {"fmt": "xml"},
        {"mode": "karaoke"},
        {"frejunFmt": "opus"},
        {"vapiSr": "fast"},
        {"frejunSr": "-8000"},
        {"frejunSr": "1000000"},
        {"vapiSr": "16000.5"},
        {"fmt": ""},
    ])
    def test_malformed_values_fall_back_to_defaults(self, params):
        assert negotiate(params) == SessionConfig()

    def test_partial_malformed_keeps_valid_values(self):
        config = negotiate({"fmt": "bin", "vapiSr": "nope"})
        assert config.framing_style == FramingStyle.BINARY
        assert config.assistant_sample_rate == 16000

    def test_assistant_rate_fallback(self):
        assert negotiate({}, assistant_sample_rate=24000).assistant_sample_rate == 24000
        assert negotiate({"vapiSr": "bad"}, assistant_sample_rate=24000).assistant_sample_rate == 24000
        assert negotiate({"vapiSr": "8000"}, assistant_sample_rate=24000).assistant_sample_rate == 8000

    def test_config_is_frozen(self):
        config = negotiate({})
        with pytest.raises(Exception):
            config.mode = OperatingMode.ECHO

    def test_to_query_round_trip(self):
        config = negotiate({"fmt": "bin", "mode": "tone", "frejunFmt": "mulaw"})
        assert negotiate(config.to_query()) == config
