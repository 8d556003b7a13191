"""Tests for ports, bundles and signal references."""

import pytest
from pydantic import ValidationError

from protoelab.model.port import Bundle, Port, PortDirection, SignalRef, coerce_signal_ref


class TestPortDirection:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("in", PortDirection.IN),
            ("input", PortDirection.IN),
            ("OUT", PortDirection.OUT),
            (" output ", PortDirection.OUT),
        ],
    )
    def test_from_string(self, text, expected):
        assert PortDirection.from_string(text) == expected

    def test_inout_is_rejected(self):
        with pytest.raises(ValueError, match="inout"):
            PortDirection.from_string("inout")

    def test_flipped(self):
        assert PortDirection.IN.flipped == PortDirection.OUT
        assert PortDirection.OUT.flipped == PortDirection.IN


class TestPort:
    def test_defaults(self):
        port = Port(name="a")
        assert port.width == 1
        assert port.direction == PortDirection.IN
        assert not port.dropped
        assert not port.optional

    def test_direction_alias(self):
        assert Port(name="y", direction="output").is_output

    def test_flipped_inverts_direction(self):
        port = Port(name="ready", direction="out", flipped=True)
        assert port.effective_direction == PortDirection.IN
        assert port.is_input

    def test_symbolic_width(self):
        port = Port(name="data", width="DATA_WIDTH")
        assert port.is_symbolic

    @pytest.mark.parametrize("width", [0, -4, "", "  "])
    def test_invalid_width(self, width):
        with pytest.raises(ValidationError):
            Port(name="a", width=width)

    def test_empty_name(self):
        with pytest.raises(ValidationError, match="empty"):
            Port(name="   ")

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            Port(name="a", polarity="high")

    def test_camel_case_aliases(self):
        port = Port.model_validate({"name": "a", "width": 4, "flipped": True})
        assert port.width == 4
        assert port.flipped


class TestBundle:
    def test_named_bundle_rejects_duplicates(self):
        with pytest.raises(ValidationError, match="Duplicate port name"):
            Bundle(ports=[Port(name="x"), Port(name="x")])

    def test_positional_bundle_allows_duplicates(self):
        bundle = Bundle(ports=[Port(name="x"), Port(name="x")], named=False)
        assert bundle.names == ["x", "x"]

    def test_lookup_preserves_order(self):
        bundle = Bundle(ports=[Port(name="b"), Port(name="a", width=8)])
        assert bundle.names == ["b", "a"]
        assert bundle.get("a").width == 8
        assert bundle.get("missing") is None


class TestSignalRef:
    def test_parse_module_port(self):
        ref = SignalRef.parse("alu.in.a[1]")
        assert (ref.instance, ref.bundle, ref.port, ref.lane) == ("alu", "in", "a", 1)
        assert str(ref) == "alu.in.a[1]"
        assert not ref.is_top_level

    def test_parse_top_level_port(self):
        ref = SignalRef.parse("p")
        assert ref.is_top_level
        assert str(ref) == "p"

    @pytest.mark.parametrize("text", ["alu.a", "a.b.c.d", "alu.in.a[x]"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            SignalRef.parse(text)

    def test_instance_requires_bundle(self):
        with pytest.raises(ValidationError):
            SignalRef(instance="alu", port="a")

    def test_negative_lane(self):
        with pytest.raises(ValidationError):
            SignalRef(instance="alu", bundle="in", port="a", lane=-1)

    def test_hashable_and_lane_copy(self):
        ref = SignalRef.parse("alu.out.y")
        assert len({ref, SignalRef.parse("alu.out.y")}) == 1
        assert ref.with_lane(2) == SignalRef.parse("alu.out.y[2]")
        assert ref.with_lane(2).with_lane(None) == ref

    def test_coerce(self):
        ref = SignalRef.parse("x")
        assert coerce_signal_ref("x") == ref
        assert coerce_signal_ref(ref) is ref
