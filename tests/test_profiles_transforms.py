"""Tests for src/profiles/transforms.py - value transformation rules."""

import pytest

from src.profiles.config import load_profile_config
from src.profiles.errors import ConfigValidationError
from src.profiles.transforms import (
    DEFAULT_RULES,
    TransformationEngine,
    TransformationRule,
    apply_rule,
    parse_rule,
    parse_rule_string,
)

R = TransformationRule


@pytest.fixture
def engine():
    return TransformationEngine({
        "IRS": [R.MULTIPLY_BY_100, R.NULL_ZEROS, R.CUT_100],
        "PCT": [R.MULTIPLY_BY_100],
        "CAP": [R.MULTIPLY_BY_100, R.CUT_100],
        "ZERO": [R.NULL_ZEROS],
        "ITN": [R.CUT_100, R.NULL_ZEROS],
    })


class TestApply:
    def test_zero_with_irs_chain_is_null(self, engine):
        assert engine.apply("IRS", 0) is None

    def test_irs_chain_scales_and_clamps(self, engine):
        assert engine.apply("IRS", 0.42) == pytest.approx(42)
        assert engine.apply("IRS", 1.5) == 100

    def test_multiply_then_cut(self, engine):
        assert engine.apply("CAP", 1.5) == 100

    def test_multiply_by_100(self, engine):
        assert engine.apply("PCT", 0.5) == 50

    def test_null_zeros_keeps_nonzero(self, engine):
        assert engine.apply("ZERO", 0) is None
        assert engine.apply("ZERO", 3) == 3

    def test_cut_then_null(self, engine):
        assert engine.apply("ITN", 250) == 100
        assert engine.apply("ITN", 0) is None

    def test_none_input_returns_none(self, engine):
        assert engine.apply("PCT", None) is None
        assert engine.apply("unregistered", None) is None

    def test_unregistered_identifier_is_identity(self, engine):
        assert engine.rules_for("unregistered") == DEFAULT_RULES
        assert engine.apply("unregistered", 12.5) == 12.5

    @pytest.mark.parametrize("value", [-5.0, 0.0, 99.9, 100.0, 100.1, 1e9])
    def test_cut100_never_exceeds_100(self, value):
        result = apply_rule(R.CUT_100, value)
        assert result <= 100

    @pytest.mark.parametrize("value", [0.0, 1.0, -3.5, 1234.5])
    def test_none_rule_is_idempotent(self, value):
        once = apply_rule(R.NONE, value)
        assert apply_rule(R.NONE, once) == once == value

    def test_apply_is_deterministic(self, engine):
        assert [engine.apply("IRS", 0.3) for _ in range(5)] == [engine.apply("IRS", 0.3)] * 5

    def test_apply_many(self, engine):
        assert engine.apply_many("IRS", [0, 0.5, None, 2]) == [None, 50, None, 100]


class TestEngineConstruction:
    def test_rules_are_immutable(self, engine):
        with pytest.raises(TypeError):
            engine.rules["NEW"] = (R.NONE,)

    def test_rules_accept_names(self):
        engine = TransformationEngine({"X": ["multiplyBy100", "NULLZEROS"]})
        assert engine.rules_for("X") == (R.MULTIPLY_BY_100, R.NULL_ZEROS)

    def test_empty_chain_falls_back_to_none(self):
        assert TransformationEngine({"X": []}).rules_for("X") == DEFAULT_RULES

    def test_unknown_rule_name_rejected(self):
        with pytest.raises(ConfigValidationError):
            TransformationEngine({"X": ["divideBy100"]})

    def test_with_rules_layers_without_mutating(self, engine):
        layered = engine.with_rules({"PCT": [R.NONE], "NEW": [R.NULL_ZEROS]})
        assert layered.apply("PCT", 0.5) == 0.5
        assert layered.apply("NEW", 0) is None
        assert engine.apply("PCT", 0.5) == 50

    def test_from_config_uses_shipped_rules(self):
        engine = TransformationEngine.from_config(load_profile_config())
        assert engine.rules_for("niYxtlxx68s") == (R.MULTIPLY_BY_100, R.NULL_ZEROS, R.CUT_100)
        assert engine.apply("niYxtlxx68s", 0) is None
        assert engine.apply("BJXyRAkf2HZ", 0.75) == 75


class TestParsing:
    def test_parse_rule_case_insensitive(self):
        assert parse_rule("Cut100") is R.CUT_100
        assert parse_rule(" none ") is R.NONE
        assert parse_rule(R.NULL_ZEROS) is R.NULL_ZEROS

    def test_parse_rule_string(self):
        result = parse_rule_string("UID: BJXyRAkf2HZ should multiplyBy100,nullZeros")
        assert result == ("BJXyRAkf2HZ", (R.MULTIPLY_BY_100, R.NULL_ZEROS))

    def test_parse_rule_string_unparsable(self, caplog):
        assert parse_rule_string("completeness should be scaled") is None
        assert "Could not parse rule string" in caplog.text

    def test_parse_rule_string_unknown_rule(self):
        with pytest.raises(ConfigValidationError):
            parse_rule_string("UID: BJXyRAkf2HZ should double")

    def test_from_strings_skips_unparsable(self):
        engine = TransformationEngine.from_strings([
            "UID: BJXyRAkf2HZ should multiplyBy100",
            "garbage",
            "UID: P7pI8pyU313 should nullZeros",
        ])
        assert set(engine.rules) == {"BJXyRAkf2HZ", "P7pI8pyU313"}
